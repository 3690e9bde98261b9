from setuptools import setup, find_packages

setup(
    name="user-service",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.15.0",
        "python-dotenv>=0.19.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "email-validator>=2.0",
        "PyMySQL>=1.0.2",
        "redis>=4.0.0",
        "sqlalchemy>=1.4.0",
        "passlib[argon2]>=1.7.4",
        "bcrypt>=4.0.0,<4.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
)

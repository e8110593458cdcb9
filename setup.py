from setuptools import setup, find_packages

setup(
    name="learniq-backend",
    version="1.0.0",
    packages=find_packages(include=["learniq", "learniq.*"]),
    package_data={
        "learniq": ["alembic.ini", "alembic/*.py", "alembic/versions/*.py"],
        "learniq.gamification": ["achievements.yaml"],
    },
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "sqlalchemy[asyncio]>=2.0.25",
        "asyncpg>=0.29.0",
        "aiosqlite>=0.19.0",
        "alembic>=1.13.0",
        "python-dotenv>=1.0.0",
        "redis>=5.0.1",
        "celery>=5.3.0",
        "aiohttp>=3.9.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "tests": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.26.0",
        ],
    },
    python_requires=">=3.9",
)

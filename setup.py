from setuptools import setup, find_packages

setup(
    name="raydium-pool-sniper",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=[
        "config",
        "db_manager",
        "db_schema",
        "errors",
        "ledger_client",
        "logger",
        "models",
        "pool_listener",
        "pool_monitor",
        "pool_resolver",
        "pricing",
    ],
    install_requires=[
        "solana>=0.34,<0.36",
        "solders>=0.18.0",
        "python-dotenv",
        "colorama==0.4.6",
        "websockets>=9.0,<12.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
)

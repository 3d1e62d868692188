# Package installation script

from setuptools import setup, find_namespace_packages

setup(
    name="amiya",
    version="0.1.0",
    description="Desktop shell daemon: backend adapters, event bus and control socket",
    packages=find_namespace_packages(where="src", include=["amiya*"]),
    package_dir={"": "src"},
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "amiya=amiya.__main__:main",
            "amiya-ctl=amiya.ctl:main",
        ],
    },
    install_requires=[
        "pyyaml",
        "pydantic>=2",
        "psutil",
        "pydbus",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)

from setuptools import setup, find_namespace_packages

setup(
    name="metafetch",
    version="0.0.1",
    description="Reactive, cancellable HTTP requests for asyncio",
    author="Metafetch Team",
    packages=find_namespace_packages(include=["metafetch", "metafetch.*"]),
    include_package_data=True,
    python_requires=">=3.8",
    install_requires=[
        "aiohttp",
        "httpx",
        "lxml",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)

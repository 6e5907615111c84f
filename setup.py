from setuptools import setup, find_packages

setup(
    name="copula-portfolio",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["models", "config", "errors", "run_rolling"],
    install_requires=[
        "numpy",
        "pandas",
        "scipy>=1.9",
        "cvxpy>=1.4",
        "clarabel",
        "tqdm",
        "psutil",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.9",
)

# setup.py
from setuptools import setup, find_packages

setup(
    name="kappa",
    version="0.1.0",
    description="A small Lisp with a macro expander, bytecode compiler and steppable VM",
    packages=find_packages(include=["kappa", "kappa.*"]),
    package_data={"kappa": ["prelude/*.lisp"]},
    include_package_data=True,
    python_requires=">=3.9",
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    zip_safe=False,
)

"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/guiperry/next-agentify"
KEYWORDS = "agent plugin compiler wasm go toolchain code-generation github-actions"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    with open(os.path.join(HERE, "src", "plugforge", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise RuntimeError("Unable to find __version__")


if __name__ == "__main__":
    setup(
        name="plugforge",
        version=read_version(),
        description="Compile agent configurations into WASM modules and native Go plugins",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.9",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        package_data={"plugforge": ["templates/*.template"]},
        include_package_data=True,
        install_requires=[
            "requests",
            "tqdm",
            "psutil",
        ],
        extras_require={
            "test": ["pytest"],
        },
        entry_points={
            "console_scripts": [
                "plugforge=plugforge.cli:main",
            ],
        },
    )

# setup.py
from setuptools import setup, find_packages

setup(
    name="editstream",
    version="0.1.0",
    description="Streaming edit pipeline: turn token-by-token model output into verified, applicable file edits.",
    author="editstream contributors",
    # editcoder 是 CLI 与流式管线，editflow 是会话历史存储
    packages=find_packages(include=["editcoder", "editcoder.*", "editflow", "editflow.*"]),
    include_package_data=True,
    package_data={
        "editcoder": ["templates/*.j2"],
    },
    install_requires=[
        "click>=8.0",
        "pyyaml",
        "jinja2",
        "rich",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "editstream = editcoder.cli:cli",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)

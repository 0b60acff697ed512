from setuptools import find_packages, setup

setup(
    name="torchtracks",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "torch>=1.10.0",
        "numpy>=1.20.0",
        "opencv-python>=4.5.0",
        "scipy>=1.7.0",
        "matplotlib>=3.4.0",
        "tqdm>=4.60.0",
        "pyyaml>=5.4",
    ],
    extras_require={
        "test": ["pytest>=6.0"],
    },
    author="Houssem Boulahbal",
    author_email="houssem.boulahbal@gmail.com",
    description="A PyTorch-based library for feature tracking across image sequences",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
    ],
    python_requires=">=3.8",
)

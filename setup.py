# setup.py
from setuptools import setup, find_packages
from pathlib import Path
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="scanocr",
    version="1.0.0",
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["scanocr", "scanocr.*"]),
    description="Page-parallel OCR for scanned PDF documents with bounded workers and guaranteed cleanup.",
    long_description=long_description,
    long_description_content_type='text/markdown',
    python_requires=">=3.9",

    install_requires=[
        "PyMuPDF",
        "pdf2image",
        "pytesseract",
        "Pillow",
        "numpy",
        "tqdm",
        "python-slugify",
    ],
    extras_require={
        "easyocr": [
            "easyocr",
            "torch",
            "torchvision",
        ],
        "test": [
            "pytest>=7",
        ],
    },
    entry_points={
        'console_scripts': [
            'scanocr=scanocr.cli:main',
        ],
    },
)

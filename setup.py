from setuptools import setup


setup(
    name="bakery-import",
    version="0.1.0",
    description="Heuristic importer for messy bakery workbooks: products, recipes, BOM, production and shop allocations",
    packages=["bakery_import"],
    package_data={
        "bakery_import": [
            "data/*.json",
        ]
    },
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "requests",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
    },
    entry_points={
        "console_scripts": [
            "bakery-import=bakery_import.cli:main",
        ]
    },
)

"""Setup configuration for portfolio_health"""

from setuptools import setup, find_packages

setup(
    name="portfolio-health-engine",
    version="0.1.0",
    description=(
        "Portfolio health dashboard core: Core Web Vitals, Lighthouse and "
        "delivery-flow scoring with improvement suggestions."
    ),
    author="Portfolio Health Engine Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"portfolio_health": ["data/*.json"]},
    include_package_data=True,
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "portfolio-health=portfolio_health.main:main",
        ],
    },
)

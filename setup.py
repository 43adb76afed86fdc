from setuptools import setup, find_packages

with open("Readme.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="diagagent",
    version="1.0.0",
    author="DiagAgent",
    description='Agent de diagnostic de la posture de gestion Intune / ConfigMgr des postes Windows.',
    long_description=long_description,
    long_description_content_type='text/markdown',
    include_package_data=True,
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.8',
    install_requires=[
        "psutil>=5.9.0",
        "requests>=2.28.0",
        "pywin32>=306; platform_system=='Windows'",
        "WMI>=1.5.1; platform_system=='Windows'",
    ],
    extras_require={
        'test': [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },

    entry_points='''
        [console_scripts]
        diagagent=diagagent.main:main
    '''
)

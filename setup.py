from setuptools import setup, find_packages

setup(
    name='geocode_server',
    version='0.1.0',
    author='AI Agent',
    description='A reverse geocoding HTTP server backed by an in-memory spatial index.',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests*']),
    package_data={
        'geocode_server': ['data/*.csv'],
    },
    install_requires=[
        'absl-py',
        'flask>=2.2',
    ],
    entry_points={
        'console_scripts': [
            'geocode-server=geocode_server.server:main',
        ],
    },
    python_requires='>=3.7',
)

from setuptools import setup, find_packages

test_exclusions = ["*.tests", "*.tests.*", "tests.*", "tests"]

setup(name='yamf',
      version='1.0',
      description='Marking engine for automated acceptance checks of student submissions',
      author='Jens Dietrich',
      license='MIT',
      package_dir={'': 'src'},
      packages=find_packages(where='src', exclude=test_exclusions),
      zip_safe=False,
      python_requires='>=3.8',
      install_requires=[
        'requests>=2.28',
        'PyYAML>=6.0',
        'jsonschema>=4.0',
        'structlog>=23.1',
        'pytest>=7.0',
      ],
      extras_require={
        'test': ['hypothesis>=6.0'],
      },
      include_package_data=True,
      package_data={'yamf': ['config_defaults/*.yml', 'config_defaults/*.json']},
      entry_points={
        'console_scripts': 'yamf = yamf.cli:cli'
      })

from setuptools import setup, find_packages

package_name = 'arm_teleop'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['test']),
    python_requires='>=3.9',
    install_requires=[
        'setuptools',
        'numpy>=1.24',
        'opencv-python>=4.8',
        'mediapipe>=0.10.0,<0.10.30',
        'bleak>=0.22.0',
        'websockets>=14.0',
        'fastapi>=0.104.0',
        'uvicorn>=0.24.0',
        'paho-mqtt>=2.0.0',
    ],
    extras_require={
        'test': ['pytest', 'httpx'],
    },
    zip_safe=True,
    description='Hand-pose teleoperation client and packet relay for a 4-axis servo arm',
    license='MIT',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [
            'arm_teleop = arm_teleop.main:main',
            'relay_gateway = relay_gateway.main:main',
        ],
    },
)

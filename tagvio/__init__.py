"""Tag-aided visual-inertial odometry: EKF predict step.

This package contains the components of the filter time update:
- coords: Quaternion algebra and camera-to-world tag transforms
- sensors: IMU samples, IMU correction and the filter state
- estimators: State vector codec and the predict engine
"""

__version__ = "0.1.0"

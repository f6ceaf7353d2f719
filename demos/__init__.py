"""
Demos: Tag-aided visual-inertial odometry

Provides examples demonstrating:
    - Predict-only replay of a synthetic IMU stream
    - World-frame tracking of camera-relative tag estimates
"""

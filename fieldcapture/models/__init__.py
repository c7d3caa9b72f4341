"""
Field Capture Orders
SQLAlchemy extension instance shared by all models.

Models:
    - session:     CaptureSession (workflow instance)
    - capture:     CaptureGroup, CaptureImage, ExtractionResult
    - station:     StationCapture
    - scheduling:  ScheduledJob
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

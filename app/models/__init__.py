"""
OTI Tracker
Shared SQLAlchemy extension instance.

Usage:
    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

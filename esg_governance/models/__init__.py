"""
ESG Governance Core
Model registry — the shared SQLAlchemy handle.

Usage:
    from esg_governance.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

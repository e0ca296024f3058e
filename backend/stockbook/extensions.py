# Overview: Flask extension instance for the database session.

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

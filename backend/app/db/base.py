"""
Declarative base shared by every BuildOps model
"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()

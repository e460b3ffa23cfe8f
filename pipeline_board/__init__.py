"""
Pipeline Board - kanban view over the CRM sales/production pipeline.
"""

__version__ = "1.0.0"

"""
Capa de contactos sobre veredas.

Este módulo contiene:
- Registro de co-presencia de peatones por vereda
- Eventos de proximidad (cruce o seguimiento)
- Registro de exposición para el modelo de transmisión
"""

from .contact_tracker import ContactTracker, CoPresenceRecord, ProximityEvent, ContactOrdering
from .exposure import ExposureLog

__all__ = [
    'ContactTracker',
    'CoPresenceRecord',
    'ProximityEvent',
    'ContactOrdering',
    'ExposureLog'
]

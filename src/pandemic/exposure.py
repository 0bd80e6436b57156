"""
Registro de exposición: receptor por defecto de los eventos de proximidad.

Acumula los ProximityEvent emitidos por el ContactTracker y los pondera
según el tipo de encuentro. No modela la enfermedad: solo prepara la
información que consume un modelo de transmisión.
"""

from typing import Dict, List

import numpy as np
import pandas as pd

from .contact_tracker import ContactOrdering, ProximityEvent
from ..utils.config import ContactTrackerConfig


class ExposureLog:
    """
    Receptor de eventos de proximidad con exposición ponderada.

    La exposición de un evento es su duración de solapamiento por el peso
    del tipo de encuentro (cruce o seguimiento).
    """

    def __init__(self, crossing_weight: float = ContactTrackerConfig.CROSSING_WEIGHT,
                 following_weight: float = ContactTrackerConfig.FOLLOWING_WEIGHT):
        if crossing_weight < 0 or following_weight < 0:
            raise ValueError("Los pesos de exposición no pueden ser negativos")

        self.weights = {
            ContactOrdering.CROSSING: crossing_weight,
            ContactOrdering.FOLLOWING: following_weight,
        }
        self.events: List[ProximityEvent] = []

    def __call__(self, event: ProximityEvent):
        self.events.append(event)

    def weighted_exposure(self, event: ProximityEvent) -> float:
        """Exposición de un evento: duración × peso del encuentro."""
        return event.duration * self.weights[event.ordering]

    def exposure_by_agent(self) -> Dict[int, float]:
        """
        Exposición acumulada por agente (ambos participantes suman).

        Returns:
            dict: {agent_id: exposición en segundos ponderados}
        """
        exposure: Dict[int, float] = {}
        for event in self.events:
            value = self.weighted_exposure(event)
            for agent_id in (event.agent_a, event.agent_b):
                exposure[agent_id] = exposure.get(agent_id, 0.0) + value
        return exposure

    def contacts_of(self, agent_id: int) -> List[int]:
        """IDs de los agentes que compartieron vereda con el dado, en orden de aparición."""
        contacts = []
        for event in self.events:
            if event.agent_a == agent_id:
                other = event.agent_b
            elif event.agent_b == agent_id:
                other = event.agent_a
            else:
                continue
            if other not in contacts:
                contacts.append(other)
        return contacts

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convierte los eventos a un DataFrame.

        Returns:
            pd.DataFrame: Una fila por evento de proximidad
        """
        columns = ['agent_a', 'agent_b', 'traversable', 'overlap_start',
                   'overlap_end', 'duration', 'ordering', 'weighted_exposure']
        rows = [{
            'agent_a': e.agent_a,
            'agent_b': e.agent_b,
            'traversable': str(e.traversable),
            'overlap_start': e.overlap_start,
            'overlap_end': e.overlap_end,
            'duration': e.duration,
            'ordering': e.ordering.value,
            'weighted_exposure': self.weighted_exposure(e)
        } for e in self.events]
        return pd.DataFrame(rows, columns=columns)

    def summary(self) -> Dict:
        """
        Resumen estadístico de los contactos registrados.

        Returns:
            dict: Cantidades, duración media y exposición total
        """
        if not self.events:
            return {
                'num_events': 0,
                'num_crossing': 0,
                'num_following': 0,
                'avg_duration': 0.0,
                'max_duration': 0.0,
                'total_exposure': 0.0,
                'agents_exposed': 0
            }

        durations = np.array([e.duration for e in self.events])
        exposures = np.array([self.weighted_exposure(e) for e in self.events])
        crossing = sum(1 for e in self.events if e.ordering == ContactOrdering.CROSSING)

        return {
            'num_events': len(self.events),
            'num_crossing': crossing,
            'num_following': len(self.events) - crossing,
            'avg_duration': float(np.mean(durations)),
            'max_duration': float(np.max(durations)),
            'total_exposure': float(np.sum(exposures)),
            'agents_exposed': len(self.exposure_by_agent())
        }

    def clear(self):
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)

"""
Mapa de calor de ocupación alimentado por eventos.

Es el lado de datos de una interfaz de visualización: se suscribe al bus
de eventos y acumula, por tramo, ingresos, ocupación actual y tiempo de
permanencia. El dibujo queda fuera de este módulo.
"""

from typing import Dict

import pandas as pd

from ..simqueue.errors import ConsistencyFault
from ..simqueue.events import AgentEntersTraversable, EventBus


class OccupancyHeatmap:
    """Acumula estadísticas de ocupación por tramo a partir de eventos."""

    def __init__(self, event_bus: EventBus = None):
        self.entries: Dict = {}
        self.current: Dict = {}
        self.dwell_time: Dict = {}
        self.peak: Dict = {}

        # (agent_id, tramo) → tiempo de ingreso
        self._entered_at: Dict = {}

        if event_bus is not None:
            event_bus.subscribe(self)

    def __call__(self, event):
        traversable = event.traversable
        key = (event.agent_id, traversable)

        if isinstance(event, AgentEntersTraversable):
            self.entries[traversable] = self.entries.get(traversable, 0) + 1
            self.current[traversable] = self.current.get(traversable, 0) + 1
            self.peak[traversable] = max(self.peak.get(traversable, 0),
                                         self.current[traversable])
            self._entered_at[key] = event.time
        else:
            if key not in self._entered_at:
                raise ConsistencyFault(
                    f"Salida de #{event.agent_id} de {traversable} sin ingreso previo")
            self.current[traversable] -= 1
            entered = self._entered_at.pop(key)
            self.dwell_time[traversable] = (self.dwell_time.get(traversable, 0.0)
                                            + event.time - entered)

    def occupancy(self, traversable) -> int:
        """Agentes presentes ahora en el tramo."""
        return self.current.get(traversable, 0)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Resumen por tramo, ordenado por cantidad de ingresos.

        Returns:
            pd.DataFrame: Columnas traversable, entries, current, peak, dwell_time
        """
        rows = [{
            'traversable': str(traversable),
            'entries': self.entries.get(traversable, 0),
            'current': self.current.get(traversable, 0),
            'peak': self.peak.get(traversable, 0),
            'dwell_time': self.dwell_time.get(traversable, 0.0)
        } for traversable in sorted(self.entries)]

        df = pd.DataFrame(rows, columns=['traversable', 'entries', 'current',
                                         'peak', 'dwell_time'])
        if not df.empty:
            df = df.sort_values('entries', ascending=False, kind='stable')
        return df

    def reset(self):
        self.entries.clear()
        self.current.clear()
        self.dwell_time.clear()
        self.peak.clear()
        self._entered_at.clear()

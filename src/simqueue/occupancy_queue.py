"""
Cola de ocupación de un tramo transitable.

Registro ordenado de los agentes que ocupan un tramo, de más avanzado a
menos avanzado. Solo el planificador la modifica.
"""

import bisect
from typing import Dict, List, NamedTuple, Optional, Tuple

from .agent import Agent, AgentKind
from .errors import ConsistencyFault
from .traversable_graph import TraversableId


class Occupant(NamedTuple):
    """Entrada de una instantánea de ocupación."""
    agent_id: int
    kind: AgentKind
    distance: float


class OccupancyQueue:
    """
    Agentes sobre un tramo ordenados por distancia descendente.

    Los empates (posibles solo entre peatones) se resuelven por ID de
    agente ascendente, de modo que el orden es siempre determinista.
    La cola no decide si una inserción es válida: eso lo resuelve la
    política de anticipación antes de llamar a insert().
    """

    def __init__(self, traversable: TraversableId):
        self.traversable = traversable

        # Claves ordenadas (-distancia, id) y datos por agente
        self._keys: List[Tuple[float, int]] = []
        self._entries: Dict[int, Occupant] = {}

    def insert(self, agent: Agent, distance: float):
        """
        Inserta un agente manteniendo el orden.

        Raises:
            ConsistencyFault: Si el agente ya estaba en la cola
        """
        if agent.id in self._entries:
            raise ConsistencyFault(
                f"{agent} ya figura en la cola de {self.traversable}")

        bisect.insort(self._keys, (-distance, agent.id))
        self._entries[agent.id] = Occupant(agent.id, agent.kind, distance)

    def remove(self, agent_id: int) -> Occupant:
        """
        Quita un agente de la cola.

        Raises:
            ConsistencyFault: Si el agente no estaba en la cola
        """
        entry = self._entries.pop(agent_id, None)
        if entry is None:
            raise ConsistencyFault(
                f"Agente #{agent_id} no figura en la cola de {self.traversable}")

        position = bisect.bisect_left(self._keys, (-entry.distance, agent_id))
        del self._keys[position]
        return entry

    def update(self, agent_id: int, distance: float):
        """Cambia la distancia registrada de un agente."""
        entry = self.remove(agent_id)
        bisect.insort(self._keys, (-distance, agent_id))
        self._entries[agent_id] = entry._replace(distance=distance)

    def distance_of(self, agent_id: int) -> float:
        return self._entries[agent_id].distance

    def snapshot(self) -> Tuple[Occupant, ...]:
        """Instantánea inmutable de la cola, del frente hacia atrás."""
        return tuple(self._entries[agent_id] for _, agent_id in self._keys)

    def agent_ids(self) -> List[int]:
        return [agent_id for _, agent_id in self._keys]

    def front(self) -> Optional[Occupant]:
        """Agente más avanzado."""
        if not self._keys:
            return None
        return self._entries[self._keys[0][1]]

    def rear(self) -> Optional[Occupant]:
        """Agente menos avanzado."""
        if not self._keys:
            return None
        return self._entries[self._keys[-1][1]]

    def rear_vehicle(self) -> Optional[Occupant]:
        """Vehículo menos avanzado (los peatones no limitan a nadie)."""
        for _, agent_id in reversed(self._keys):
            entry = self._entries[agent_id]
            if entry.kind == AgentKind.VEHICLE:
                return entry
        return None

    def check_no_passing(self) -> bool:
        """
        Verifica con un recorrido lineal que los vehículos tengan
        distancias estrictamente decrecientes.
        """
        previous = None
        for _, agent_id in self._keys:
            entry = self._entries[agent_id]
            if entry.kind != AgentKind.VEHICLE:
                continue
            if previous is not None and entry.distance >= previous:
                return False
            previous = entry.distance
        return True

    def clear(self):
        self._keys.clear()
        self._entries.clear()

    def __contains__(self, agent_id: int) -> bool:
        return agent_id in self._entries

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"OccupancyQueue({self.traversable}, agents={self.agent_ids()})"

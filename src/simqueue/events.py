"""
Eventos de ocupación y despacho publicar/suscribir.

El planificador emite AgentEntersTraversable / AgentLeavesTraversable y
el bus los entrega en orden de emisión, de forma síncrona, a cada
suscriptor registrado para el tipo de tramo correspondiente. Los
suscriptores (rastreador de contactos, mapa de calor, interfaz) reciben
cargas inmutables y no deben modificar agentes ni colas.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Set, Union

import pandas as pd

from .agent import AgentKind
from .traversable_graph import TraversableId, TraversableKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentEntersTraversable:
    """Un agente ingresó a un tramo."""
    agent_id: int
    agent_kind: AgentKind
    traversable: TraversableId
    time: float
    contraflow: bool = False


@dataclass(frozen=True)
class AgentLeavesTraversable:
    """Un agente abandonó un tramo."""
    agent_id: int
    agent_kind: AgentKind
    traversable: TraversableId
    time: float
    contraflow: bool = False


OccupancyEvent = Union[AgentEntersTraversable, AgentLeavesTraversable]
EventHandler = Callable[[OccupancyEvent], None]


class EventBus:
    """
    Bus síncrono de eventos de ocupación.

    El planificador no conoce la identidad de los suscriptores: solo
    publica. Cada suscriptor puede filtrar por tipo de tramo.
    """

    def __init__(self):
        self._subscribers: List[tuple] = []  # (handler, kinds)
        self.total_published = 0

    def subscribe(self, handler: EventHandler,
                  kinds: Optional[Iterable[TraversableKind]] = None):
        """
        Registra un suscriptor.

        Args:
            handler: Función que recibe cada evento
            kinds: Tipos de tramo de interés (None = todos)
        """
        kind_set: Optional[Set[TraversableKind]] = set(kinds) if kinds is not None else None
        self._subscribers.append((handler, kind_set))

    def unsubscribe(self, handler: EventHandler):
        """Quita todas las suscripciones de un handler."""
        self._subscribers = [(h, k) for h, k in self._subscribers if h != handler]

    def publish(self, event: OccupancyEvent):
        """Entrega un evento a los suscriptores interesados, en orden de registro."""
        self.total_published += 1
        for handler, kinds in self._subscribers:
            if kinds is None or event.traversable.kind in kinds:
                handler(event)

    def publish_all(self, events: Iterable[OccupancyEvent]):
        for event in events:
            self.publish(event)

    def __len__(self) -> int:
        return len(self._subscribers)


class EventRecorder:
    """
    Suscriptor que guarda el registro ordenado de eventos.

    Sirve para comparar corridas (determinismo) y para que una interfaz
    reproduzca la ocupación a posteriori.
    """

    def __init__(self):
        self.events: List[OccupancyEvent] = []

    def __call__(self, event: OccupancyEvent):
        self.events.append(event)

    def enters(self) -> List[AgentEntersTraversable]:
        return [e for e in self.events if isinstance(e, AgentEntersTraversable)]

    def leaves(self) -> List[AgentLeavesTraversable]:
        return [e for e in self.events if isinstance(e, AgentLeavesTraversable)]

    def for_agent(self, agent_id: int) -> List[OccupancyEvent]:
        return [e for e in self.events if e.agent_id == agent_id]

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convierte el registro a un DataFrame.

        Returns:
            pd.DataFrame: Una fila por evento, en orden de emisión
        """
        rows = [{
            'event': 'enter' if isinstance(e, AgentEntersTraversable) else 'leave',
            'agent_id': e.agent_id,
            'agent_kind': e.agent_kind.value,
            'traversable': str(e.traversable),
            'time': e.time,
            'contraflow': e.contraflow
        } for e in self.events]
        return pd.DataFrame(rows, columns=['event', 'agent_id', 'agent_kind',
                                           'traversable', 'time', 'contraflow'])

    def clear(self):
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)

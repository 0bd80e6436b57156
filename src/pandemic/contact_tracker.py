"""
Registro de co-presencia de peatones en veredas.

El rastreador se suscribe a los eventos de ocupación y, por cada vereda,
recuerda quién ingresó, cuándo y (si ya salió) cuándo salió. Cuando un
peatón abandona la vereda se calculan sus solapamientos temporales con
los demás ocupantes recientes y se emite un ProximityEvent por par.

El modelo de transmisión es un colaborador externo: solo recibe los
eventos de proximidad a través de add_listener().
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from ..simqueue.agent import AgentKind
from ..simqueue.errors import ConsistencyFault
from ..simqueue.events import AgentEntersTraversable, AgentLeavesTraversable, EventBus
from ..simqueue.traversable_graph import TraversableGraph, TraversableId, TraversableKind
from ..utils.config import ContactTrackerConfig

logger = logging.getLogger(__name__)


class ContactOrdering(Enum):
    """Tipo de encuentro entre dos peatones."""
    FOLLOWING = "following"  # Mismo sentido de marcha
    CROSSING = "crossing"    # Sentidos opuestos


@dataclass
class CoPresenceRecord:
    """Estadía de un agente en una vereda."""
    agent_id: int
    enter_time: float
    leave_time: Optional[float] = None
    contraflow: bool = False
    reported: Set[int] = field(default_factory=set)

    @property
    def is_open(self) -> bool:
        return self.leave_time is None


@dataclass(frozen=True)
class ProximityEvent:
    """Dos peatones compartieron una vereda durante [overlap_start, overlap_end]."""
    agent_a: int
    agent_b: int
    traversable: TraversableId
    overlap_start: float
    overlap_end: float
    ordering: ContactOrdering

    @property
    def duration(self) -> float:
        return self.overlap_end - self.overlap_start


ProximityListener = Callable[[ProximityEvent], None]


class ContactTracker:
    """
    Rastreador de contactos sobre tramos relevantes para la transmisión.

    Solo se consideran peatones sobre veredas. Los registros cerrados se
    descartan perezosamente una vez que quedan fuera del horizonte de
    memoria.
    """

    def __init__(self, graph: TraversableGraph,
                 memory_horizon: float = ContactTrackerConfig.MEMORY_HORIZON,
                 min_overlap: float = ContactTrackerConfig.MIN_OVERLAP):
        """
        Inicializa el rastreador.

        Args:
            graph: Red de tramos (para saber qué carriles son veredas)
            memory_horizon: Segundos que se conserva un registro cerrado
            min_overlap: Solapamiento mínimo (segundos) para emitir un evento
        """
        if memory_horizon < 0 or min_overlap < 0:
            raise ValueError("Horizonte y solapamiento mínimo deben ser no negativos")

        self.graph = graph
        self.memory_horizon = memory_horizon
        self.min_overlap = min_overlap

        self.spaces: Dict[TraversableId, List[CoPresenceRecord]] = {}
        self.listeners: List[ProximityListener] = []
        self.total_events = 0

    def attach(self, event_bus: EventBus):
        """Se suscribe a los eventos de carriles del bus."""
        event_bus.subscribe(self.handle_event, kinds=[TraversableKind.LANE])

    def add_listener(self, listener: ProximityListener):
        """Registra un receptor de eventos de proximidad (modelo de transmisión)."""
        self.listeners.append(listener)

    def handle_event(self, event):
        """Procesa un evento de ocupación; ignora lo que no sea peatón en vereda."""
        if event.agent_kind != AgentKind.PEDESTRIAN:
            return
        if not self.graph.is_sidewalk(event.traversable):
            return

        if isinstance(event, AgentEntersTraversable):
            self.person_enters(event.traversable, event.agent_id, event.time, event.contraflow)
        elif isinstance(event, AgentLeavesTraversable):
            self.person_leaves(event.traversable, event.agent_id, event.time)

    def _purge(self, traversable: TraversableId, now: float) -> List[CoPresenceRecord]:
        records = self.spaces.setdefault(traversable, [])
        cutoff = now - self.memory_horizon
        records[:] = [r for r in records if r.is_open or r.leave_time >= cutoff]
        return records

    def _open_record(self, records: List[CoPresenceRecord],
                     agent_id: int) -> Optional[CoPresenceRecord]:
        for record in records:
            if record.agent_id == agent_id and record.is_open:
                return record
        return None

    def person_enters(self, traversable: TraversableId, agent_id: int, time: float,
                      contraflow: bool = False):
        """
        Abre un registro de co-presencia.

        Raises:
            ConsistencyFault: Si el agente ya tenía un registro abierto ahí
        """
        records = self._purge(traversable, time)
        if self._open_record(records, agent_id) is not None:
            raise ConsistencyFault(
                f"Agente #{agent_id} ingresó dos veces a {traversable} sin salir")

        records.append(CoPresenceRecord(agent_id, time, contraflow=contraflow))

    def person_leaves(self, traversable: TraversableId, agent_id: int,
                      time: float) -> List[ProximityEvent]:
        """
        Cierra el registro del agente y emite sus eventos de proximidad.

        Returns:
            list: Eventos emitidos, en el orden de los registros

        Raises:
            ConsistencyFault: Si el agente no tenía un registro abierto ahí
        """
        records = self._purge(traversable, time)
        record = self._open_record(records, agent_id)
        if record is None:
            raise ConsistencyFault(
                f"Agente #{agent_id} salió de {traversable} sin haber ingresado")

        record.leave_time = time

        emitted = []
        for other in records:
            if other is record or other.agent_id in record.reported:
                continue

            overlap_start = max(record.enter_time, other.enter_time)
            other_end = other.leave_time if other.leave_time is not None else time
            overlap_end = min(record.leave_time, other_end)
            overlap = overlap_end - overlap_start

            if overlap <= 0 or overlap < self.min_overlap:
                continue

            if record.contraflow != other.contraflow:
                ordering = ContactOrdering.CROSSING
            else:
                ordering = ContactOrdering.FOLLOWING

            record.reported.add(other.agent_id)
            other.reported.add(record.agent_id)

            event = ProximityEvent(agent_id, other.agent_id, traversable,
                                   overlap_start, overlap_end, ordering)
            emitted.append(event)

        for event in emitted:
            self.total_events += 1
            logger.debug("Contacto %s: #%d y #%d en %s durante %.1fs",
                         event.ordering.value, event.agent_a, event.agent_b,
                         traversable, event.duration)
            for listener in self.listeners:
                listener(event)

        return emitted

    def occupants(self, traversable: TraversableId) -> List[int]:
        """IDs de los agentes con registro abierto en la vereda."""
        return [r.agent_id for r in self.spaces.get(traversable, []) if r.is_open]

    def records(self, traversable: TraversableId) -> List[CoPresenceRecord]:
        """Registros vigentes (abiertos y cerrados dentro del horizonte)."""
        return list(self.spaces.get(traversable, []))

    def count_open(self) -> int:
        return sum(1 for records in self.spaces.values() for r in records if r.is_open)

    def reset(self):
        self.spaces.clear()
        self.total_events = 0

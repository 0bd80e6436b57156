"""
Políticas de anticipación y permiso por tipo de agente.

Una política responde, sin modificar nada, si un agente puede pasar al
próximo tramo en este tick dado lo que ocupa ese tramo y el estado de
los permisos de giro. Vehículos y peatones comparten la interfaz pero
no la regla:

- Vehículos: respetan permisos de giro y una distancia de seguimiento,
  tanto dentro de un tramo como al ingresar al siguiente.
- Peatones: solo respetan permisos de giro (cruces); pueden ocupar
  posiciones superpuestas sobre la vereda.
"""

from typing import Dict, Optional, Sequence
from enum import Enum

from .agent import Agent, AgentKind
from .occupancy_queue import Occupant
from .traversable_graph import TraversableGraph, TraversableId
from ..utils.config import SimulatorConfig


class DenyReason(Enum):
    """Motivos por los que se niega el avance."""
    TURN_NOT_PERMITTED = "turn_not_permitted"
    INSUFFICIENT_GAP = "insufficient_gap"


class Decision:
    """Resultado de una consulta de avance: Grant o Deny(motivo)."""

    __slots__ = ('granted', 'reason')

    def __init__(self, granted: bool, reason: Optional[DenyReason] = None):
        self.granted = granted
        self.reason = reason

    @classmethod
    def grant(cls) -> 'Decision':
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> 'Decision':
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.granted

    def __eq__(self, other) -> bool:
        if not isinstance(other, Decision):
            return NotImplemented
        return self.granted == other.granted and self.reason == other.reason

    def __repr__(self) -> str:
        if self.granted:
            return "Grant"
        return f"Deny({self.reason.value})"


class LookaheadPolicy:
    """
    Interfaz común de las políticas de anticipación.

    El bucle del planificador solo usa estos métodos, sin preguntar por
    el tipo del agente.
    """

    kind: AgentKind = None

    def __init__(self, graph: TraversableGraph, following_distance: float,
                 headway_time: float = SimulatorConfig.HEADWAY_TIME):
        """
        Inicializa la política.

        Args:
            graph: Red de tramos (solo lectura)
            following_distance: Separación mínima constante (metros)
            headway_time: Separación adicional por metro/segundo de velocidad
        """
        if following_distance < 0 or headway_time < 0:
            raise ValueError("La separación de seguimiento no puede ser negativa")

        self.graph = graph
        self.following_distance = following_distance
        self.headway_time = headway_time

    def can_advance(self, agent: Agent, next_traversable: TraversableId,
                    occupancy_snapshot: Sequence[Occupant], time: float) -> Decision:
        """
        Decide si el agente puede ingresar al próximo tramo ahora.

        Args:
            agent: Agente que solicita avanzar
            next_traversable: Tramo al que quiere pasar
            occupancy_snapshot: Ocupación actual de ese tramo (frente primero)
            time: Tiempo de simulación en que se evalúa el permiso

        Returns:
            Decision: Grant o Deny(motivo)
        """
        if not self.graph.turn_permission(next_traversable, time):
            return Decision.deny(DenyReason.TURN_NOT_PERMITTED)
        return self._check_space(agent, occupancy_snapshot)

    def _check_space(self, agent: Agent, occupancy_snapshot: Sequence[Occupant]) -> Decision:
        return Decision.grant()

    def required_gap(self, agent: Agent) -> float:
        """
        Separación requerida a la velocidad de crucero del agente.

        Se usa la velocidad de crucero aunque el agente esté detenido: un
        agente solo pide cambiar de tramo cuando su avance libre del tick
        excede el largo del tramo, es decir, cuando se mueve a esa velocidad.
        """
        return self.following_distance + self.headway_time * agent.speed

    def following_bound(self, agent: Agent, leader_distance: Optional[float]) -> float:
        """Distancia máxima alcanzable detrás de un líder dentro del mismo tramo."""
        return float('inf')

    def landing_distance(self, agent: Agent, overflow: float, next_length: float,
                         occupancy_snapshot: Sequence[Occupant]) -> float:
        """Distancia a la que queda el agente sobre el nuevo tramo."""
        return min(max(overflow, 0.0), next_length)


class VehicleLookahead(LookaheadPolicy):
    """Política de vehículos: permisos de giro + distancia de seguimiento."""

    kind = AgentKind.VEHICLE

    def __init__(self, graph: TraversableGraph,
                 following_distance: float = SimulatorConfig.VEHICLE_FOLLOWING_DISTANCE,
                 headway_time: float = SimulatorConfig.HEADWAY_TIME):
        if following_distance <= 0:
            # Con separación nula dos vehículos podrían quedar a igual distancia
            raise ValueError("Los vehículos necesitan una distancia de seguimiento positiva")
        super().__init__(graph, following_distance, headway_time)

    @staticmethod
    def _rear_vehicle(occupancy_snapshot: Sequence[Occupant]) -> Optional[Occupant]:
        for occupant in reversed(occupancy_snapshot):
            if occupant.kind == AgentKind.VEHICLE:
                return occupant
        return None

    def _check_space(self, agent: Agent, occupancy_snapshot: Sequence[Occupant]) -> Decision:
        rear = self._rear_vehicle(occupancy_snapshot)
        if rear is not None and rear.distance < self.required_gap(agent):
            return Decision.deny(DenyReason.INSUFFICIENT_GAP)
        return Decision.grant()

    def following_bound(self, agent: Agent, leader_distance: Optional[float]) -> float:
        if leader_distance is None:
            return float('inf')
        return leader_distance - self.required_gap(agent)

    def landing_distance(self, agent: Agent, overflow: float, next_length: float,
                         occupancy_snapshot: Sequence[Occupant]) -> float:
        landing = super().landing_distance(agent, overflow, next_length, occupancy_snapshot)
        rear = self._rear_vehicle(occupancy_snapshot)
        if rear is not None:
            landing = min(landing, rear.distance - self.required_gap(agent))
        return landing


class PedestrianLookahead(LookaheadPolicy):
    """Política de peatones: solo permisos de cruce, sin separación."""

    kind = AgentKind.PEDESTRIAN

    def __init__(self, graph: TraversableGraph,
                 following_distance: float = SimulatorConfig.PEDESTRIAN_FOLLOWING_DISTANCE,
                 headway_time: float = 0.0):
        super().__init__(graph, following_distance, headway_time)


def build_policies(graph: TraversableGraph,
                   vehicle_following_distance: float = SimulatorConfig.VEHICLE_FOLLOWING_DISTANCE,
                   headway_time: float = SimulatorConfig.HEADWAY_TIME) -> Dict[AgentKind, LookaheadPolicy]:
    """
    Crea una política por tipo de agente.

    Returns:
        dict: {AgentKind: LookaheadPolicy}
    """
    return {
        AgentKind.VEHICLE: VehicleLookahead(graph, vehicle_following_distance, headway_time),
        AgentKind.PEDESTRIAN: PedestrianLookahead(graph),
    }

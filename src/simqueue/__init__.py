"""
Núcleo de movimiento SimQueue.

Este módulo contiene el motor que modela:
- Red de tramos (carriles y giros) como grafo dirigido
- Colas de ocupación por tramo
- Políticas de anticipación por tipo de agente
- Avance tick a tick y eventos de ocupación
"""

from .errors import SimQueueError, ConsistencyFault, SimulationCorrupted, ReentrantMutationError
from .traversable_graph import (TraversableGraph, TraversableId, TraversableKind, Lane, Turn,
                                lane_id, turn_id, parse_traversable)
from .signals import TrafficSignal, SignalPhase, LightState
from .agent import Agent, AgentKind, AgentStatus, Route
from .occupancy_queue import OccupancyQueue, Occupant
from .lookahead import (Decision, DenyReason, LookaheadPolicy, VehicleLookahead,
                        PedestrianLookahead, build_policies)
from .events import AgentEntersTraversable, AgentLeavesTraversable, EventBus, EventRecorder
from .scheduler import SimQueueScheduler
from .agent_generator import AgentGenerator, SpawnScenario

__all__ = [
    'SimQueueError',
    'ConsistencyFault',
    'SimulationCorrupted',
    'ReentrantMutationError',
    'TraversableGraph',
    'TraversableId',
    'TraversableKind',
    'Lane',
    'Turn',
    'lane_id',
    'turn_id',
    'parse_traversable',
    'TrafficSignal',
    'SignalPhase',
    'LightState',
    'Agent',
    'AgentKind',
    'AgentStatus',
    'Route',
    'OccupancyQueue',
    'Occupant',
    'Decision',
    'DenyReason',
    'LookaheadPolicy',
    'VehicleLookahead',
    'PedestrianLookahead',
    'build_policies',
    'AgentEntersTraversable',
    'AgentLeavesTraversable',
    'EventBus',
    'EventRecorder',
    'SimQueueScheduler',
    'AgentGenerator',
    'SpawnScenario'
]

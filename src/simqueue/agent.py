"""
Modelo de agente (vehículo o peatón) y de su ruta.

Este módulo implementa el registro por agente que el planificador avanza
tick a tick: tramo actual, distancia recorrida sobre el tramo, velocidad,
ruta y un pequeño estado. También acumula estadísticas del viaje.
"""

from typing import List, Optional
from enum import Enum

from .traversable_graph import TraversableId
from ..utils.config import SimulatorConfig


class AgentKind(Enum):
    """Tipos de agente."""
    VEHICLE = "vehicle"
    PEDESTRIAN = "pedestrian"


class AgentStatus(Enum):
    """Estados posibles de un agente."""
    QUEUED = "queued"                                    # Esperando ingresar o retenido por el de adelante
    MOVING = "moving"                                    # Avanzó libremente
    WAITING_FOR_PERMISSION = "waiting_for_permission"    # Detenido al final del tramo
    FINISHED = "finished"                                # Ruta completada


class Route:
    """
    Ruta de un agente, provista por el colaborador de ruteo.

    Es una secuencia fija de tramos. El planificador solo la lee y la
    hace avanzar cuando el agente completa un tramo.
    """

    def __init__(self, traversables: List[TraversableId]):
        """
        Inicializa la ruta.

        Args:
            traversables: Secuencia de tramos (el primero es el de partida)

        Raises:
            ValueError: Si la ruta está vacía
        """
        if not traversables:
            raise ValueError("Una ruta necesita al menos un tramo")

        self.traversables = list(traversables)
        self.index = 0

    def current(self) -> TraversableId:
        """Tramo que el agente ocupa según la ruta."""
        return self.traversables[self.index]

    def next_traversable(self) -> Optional[TraversableId]:
        """Próximo tramo de la ruta, o None si la ruta está agotada."""
        if self.index + 1 < len(self.traversables):
            return self.traversables[self.index + 1]
        return None

    def advance(self):
        """Marca el tramo actual como completado."""
        if self.next_traversable() is None:
            raise ValueError("La ruta ya está agotada")
        self.index += 1

    def remaining(self) -> List[TraversableId]:
        """Tramos que faltan recorrer, sin contar el actual."""
        return self.traversables[self.index + 1:]

    def __len__(self) -> int:
        return len(self.traversables)

    def __repr__(self) -> str:
        return f"Route({' → '.join(str(t) for t in self.traversables)}, index={self.index})"


class Agent:
    """
    Representa un agente individual de la simulación.

    El agente no se mueve solo: el planificador decide cuánto avanza en
    cada tick según su velocidad, el agente de adelante y la política de
    anticipación de su tipo. El registro acumula estadísticas del viaje.
    """

    def __init__(self, agent_id: int, kind: AgentKind, route: Route,
                 speed: Optional[float] = None, spawn_time: float = 0.0,
                 contraflow: bool = False):
        """
        Inicializa un agente.

        Args:
            agent_id: Identificador estable (define el desempate determinista)
            kind: Tipo de agente (vehículo o peatón)
            route: Ruta a recorrer
            speed: Velocidad de crucero en m/s (default según el tipo)
            spawn_time: Tiempo de generación (segundos)
            contraflow: Si camina en sentido opuesto al del carril (veredas)
        """
        if speed is None:
            speed = (SimulatorConfig.VEHICLE_MAX_SPEED_MS if kind == AgentKind.VEHICLE
                     else SimulatorConfig.PEDESTRIAN_SPEED_MS)
        if speed < 0:
            raise ValueError(f"Velocidad negativa: {speed}")

        # Identificación
        self.id = agent_id
        self.kind = kind

        # Ruta y ubicación (solo el planificador las modifica)
        self.route = route
        self.current: Optional[TraversableId] = None
        self.distance = 0.0  # Metros desde el inicio del tramo actual
        self.contraflow = contraflow

        # Velocidades
        self.speed = speed  # m/s de crucero
        self.current_speed = 0.0  # m/s efectivamente concedidos en el último tick

        # Estado
        self.status = AgentStatus.QUEUED
        self.spawn_time = spawn_time
        self.finish_time: Optional[float] = None

        # Estadísticas
        self.distance_traveled = 0.0
        self.total_waiting_time = 0.0
        self.time_waiting_for_permission = 0.0
        self.num_stops = 0
        self.segments_completed = 0
        self._was_stopped = False

    @property
    def is_vehicle(self) -> bool:
        return self.kind == AgentKind.VEHICLE

    @property
    def is_pedestrian(self) -> bool:
        return self.kind == AgentKind.PEDESTRIAN

    def has_finished(self) -> bool:
        """Verifica si el agente completó su ruta."""
        return self.status == AgentStatus.FINISHED

    def record_tick(self, advanced: float, dt: float):
        """
        Actualiza estadísticas luego de que el planificador movió al agente.

        Args:
            advanced: Metros avanzados en el tick
            dt: Duración del tick (segundos)
        """
        self.current_speed = advanced / dt
        self.distance_traveled += advanced

        is_stopped = self.current_speed < SimulatorConfig.STOPPED_SPEED_THRESHOLD
        if is_stopped:
            self.total_waiting_time += dt

            if not self._was_stopped:
                self.num_stops += 1
                self._was_stopped = True

            if self.status == AgentStatus.WAITING_FOR_PERMISSION:
                self.time_waiting_for_permission += dt
        else:
            self._was_stopped = False

    def get_travel_time(self, current_time: float) -> float:
        """
        Calcula el tiempo total de viaje.

        Args:
            current_time: Tiempo actual de simulación

        Returns:
            float: Tiempo de viaje en segundos
        """
        if self.has_finished() and self.finish_time is not None:
            return self.finish_time - self.spawn_time
        return current_time - self.spawn_time

    def get_average_speed_kmh(self) -> float:
        """
        Calcula la velocidad promedio del viaje completado.

        Returns:
            float: Velocidad promedio en km/h (0 si aún no terminó)
        """
        if self.finish_time is None or self.distance_traveled == 0:
            return 0.0

        travel_time = self.finish_time - self.spawn_time
        if travel_time <= 0:
            return 0.0

        return (self.distance_traveled / travel_time) * 3.6

    def get_statistics(self) -> dict:
        """
        Retorna un diccionario con todas las estadísticas del agente.

        Returns:
            dict: Estadísticas completas
        """
        return {
            'agent_id': self.id,
            'kind': self.kind.value,
            'spawn_time': self.spawn_time,
            'finish_time': self.finish_time,
            'travel_time': self.get_travel_time(self.finish_time or self.spawn_time),
            'distance_traveled': self.distance_traveled,
            'avg_speed_kmh': self.get_average_speed_kmh(),
            'total_waiting_time': self.total_waiting_time,
            'time_waiting_for_permission': self.time_waiting_for_permission,
            'num_stops': self.num_stops,
            'segments_completed': self.segments_completed,
            'finished': self.has_finished()
        }

    def get_status_string(self) -> str:
        """
        Retorna una representación legible del estado actual.

        Returns:
            str: String con estado formateado
        """
        label = "Vehículo" if self.is_vehicle else "Peatón"

        if self.has_finished():
            return f"{label} #{self.id} - RUTA COMPLETADA"

        return (f"{label} #{self.id} | "
                f"Estado: {self.status.value.upper()} | "
                f"Velocidad: {self.current_speed * 3.6:.1f} km/h | "
                f"Tramo: {self.current} | "
                f"Posición: {self.distance:.1f}m | "
                f"Paradas: {self.num_stops}")

    def __str__(self) -> str:
        return f"Agent(#{self.id}, {self.kind.value})"

    def __repr__(self) -> str:
        return (f"Agent(id={self.id}, kind={self.kind.value}, "
                f"current={self.current}, distance={self.distance:.2f}, "
                f"status={self.status.value})")

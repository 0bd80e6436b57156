"""
Semáforos de tiempo fijo usados como oráculo de permisos de giro.

Este módulo implementa un semáforo multi-fase (verde, amarillo, todo-rojo)
cuyo estado es una función pura del tiempo de simulación. El grafo de
tramos lo consulta para responder turn_permission(turn, time).
"""

from typing import Dict, List, Optional
from enum import Enum

from ..utils.config import SignalConfig


class LightState(Enum):
    """Estados posibles de un semáforo."""
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    OFF = "off"


class SignalPhase:
    """
    Representa una fase del semáforo.

    Una fase es un período durante el cual ciertos movimientos
    (vehiculares o peatonales) tienen verde mientras el resto tiene rojo.
    """

    def __init__(self, name: str, green_duration: int, movements: List[str],
                 yellow_duration: int = SignalConfig.YELLOW_TIME,
                 all_red_duration: int = SignalConfig.ALL_RED_TIME):
        """
        Inicializa una fase del semáforo.

        Args:
            name: Nombre de la fase (ej: "north_south")
            green_duration: Duración del verde en segundos
            movements: Movimientos habilitados en verde
                       (ej: ["north_south", "walk_north_south"])
            yellow_duration: Duración del amarillo en segundos
            all_red_duration: Duración del todo-rojo en segundos

        Raises:
            ValueError: Si la duración de verde está fuera de rango
        """
        if green_duration < SignalConfig.MIN_GREEN_TIME:
            raise ValueError(
                f"Duración de verde muy corta: {green_duration}s "
                f"(mín: {SignalConfig.MIN_GREEN_TIME}s)")
        if green_duration > SignalConfig.MAX_GREEN_TIME:
            raise ValueError(
                f"Duración de verde muy larga: {green_duration}s "
                f"(máx: {SignalConfig.MAX_GREEN_TIME}s)")

        self.name = name
        self.green_duration = green_duration
        self.movements = list(movements)
        self.yellow_duration = yellow_duration
        self.all_red_duration = all_red_duration

    @property
    def total_duration(self) -> int:
        """Duración total de la fase (verde + amarillo + todo-rojo)."""
        return self.green_duration + self.yellow_duration + self.all_red_duration

    def get_state_at_time(self, time_in_phase: float) -> LightState:
        """
        Retorna el estado de la fase en un momento dado.

        Args:
            time_in_phase: Tiempo transcurrido desde el inicio de la fase (segundos)

        Returns:
            LightState: Estado del semáforo (GREEN, YELLOW, RED)
        """
        if time_in_phase < 0:
            return LightState.RED
        elif time_in_phase < self.green_duration:
            return LightState.GREEN
        elif time_in_phase < self.green_duration + self.yellow_duration:
            return LightState.YELLOW
        else:
            return LightState.RED

    def __repr__(self) -> str:
        return (f"SignalPhase(name='{self.name}', "
                f"green={self.green_duration}s, "
                f"total={self.total_duration}s)")


class TrafficSignal:
    """
    Semáforo de una intersección con fases cíclicas.

    A diferencia de un semáforo con estado interno, la fase vigente se
    calcula a partir del tiempo absoluto, de modo que dos consultas con
    el mismo tiempo devuelven siempre la misma respuesta.
    """

    def __init__(self, intersection_id: int, intersection_name: str = ""):
        """
        Inicializa un semáforo con la configuración estándar de 2 fases.

        Args:
            intersection_id: ID de la intersección que controla
            intersection_name: Nombre de la intersección (opcional)
        """
        self.intersection_id = intersection_id
        self.intersection_name = intersection_name

        self.phases: List[SignalPhase] = []
        self.offset = 0  # segundos de desfase respecto a t=0
        self.is_active = True

        self.set_configuration({
            "north_south": SignalConfig.DEFAULT_GREEN_TIME,
            "east_west": SignalConfig.DEFAULT_GREEN_TIME
        })

    def set_configuration(self, phase_configs: Dict[str, int], offset: int = 0):
        """
        Configura las fases estándar del semáforo.

        Args:
            phase_configs: Diccionario {nombre_fase: duración_verde_segundos}
                          Ej: {"north_south": 35, "east_west": 40, "left_turns": 15}
            offset: Desfase en segundos para coordinación

        Raises:
            ValueError: Si la configuración no es válida
        """
        phases = []
        for name, movements in SignalConfig.DEFAULT_PHASE_MOVEMENTS.items():
            if name in phase_configs:
                phases.append(SignalPhase(name, phase_configs[name], movements))

        unknown = set(phase_configs) - set(SignalConfig.DEFAULT_PHASE_MOVEMENTS)
        if unknown:
            raise ValueError(f"Fases desconocidas: {sorted(unknown)}")
        if not phases:
            raise ValueError("Debe configurarse al menos una fase")

        self.phases = phases
        self.offset = max(SignalConfig.MIN_OFFSET, min(offset, SignalConfig.MAX_OFFSET))

    def add_phase(self, name: str, green_duration: int, movements: List[str]):
        """Agrega una fase personalizada al final del ciclo."""
        self.phases.append(SignalPhase(name, green_duration, movements))

    def clear_phases(self):
        """Elimina todas las fases (para armar un ciclo a medida)."""
        self.phases = []

    def get_cycle_length(self) -> int:
        """
        Retorna la duración total del ciclo completo del semáforo.

        Returns:
            int: Segundos para completar todas las fases
        """
        return sum(phase.total_duration for phase in self.phases)

    def _locate(self, time: float):
        """Retorna (índice de fase, tiempo dentro de la fase) para un tiempo absoluto."""
        cycle_length = self.get_cycle_length()
        time_in_cycle = (time - self.offset) % cycle_length

        for index, phase in enumerate(self.phases):
            if time_in_cycle < phase.total_duration:
                return index, time_in_cycle
            time_in_cycle -= phase.total_duration

        # Solo por redondeo de punto flotante al final del ciclo
        return len(self.phases) - 1, self.phases[-1].total_duration

    def get_current_phase(self, time: float) -> SignalPhase:
        """Retorna la fase vigente en el tiempo dado."""
        if not self.phases:
            raise RuntimeError("Semáforo sin fases configuradas")
        index, _ = self._locate(time)
        return self.phases[index]

    def get_state(self, movement: str, time: float) -> LightState:
        """
        Retorna el estado del semáforo para un movimiento.

        Args:
            movement: Movimiento consultado (ej: "north_south", "walk_east_west")
            time: Tiempo de simulación (segundos)

        Returns:
            LightState: Estado del semáforo (GREEN, YELLOW, RED, OFF)
        """
        if not self.is_active or not self.phases:
            return LightState.OFF

        index, time_in_phase = self._locate(time)
        phase = self.phases[index]

        if movement in phase.movements:
            return phase.get_state_at_time(time_in_phase)
        return LightState.RED

    def can_pass(self, movement: str, time: float) -> bool:
        """
        Determina si un movimiento está habilitado.

        Un semáforo apagado no restringe el paso; en amarillo no se
        habilita el ingreso a la intersección.

        Args:
            movement: Movimiento consultado
            time: Tiempo de simulación

        Returns:
            bool: True si puede pasar
        """
        state = self.get_state(movement, time)
        return state in (LightState.GREEN, LightState.OFF)

    def get_time_until_green(self, movement: str, time: float) -> float:
        """
        Calcula cuánto tiempo falta para que un movimiento tenga verde.

        Returns:
            float: Segundos hasta el próximo verde (0 si ya está en verde)
        """
        if not self.phases:
            return float('inf')

        index, time_in_phase = self._locate(time)
        current_phase = self.phases[index]

        if (movement in current_phase.movements and
                current_phase.get_state_at_time(time_in_phase) == LightState.GREEN):
            return 0.0

        time_to_green = current_phase.total_duration - time_in_phase
        for step in range(1, len(self.phases) + 1):
            phase = self.phases[(index + step) % len(self.phases)]
            if movement in phase.movements:
                return time_to_green
            time_to_green += phase.total_duration

        return float('inf')

    def get_efficiency_ratio(self, movement: str) -> float:
        """
        Fracción del ciclo durante la cual el movimiento tiene verde.

        Returns:
            float: Ratio entre 0.0 y 1.0
        """
        cycle_length = self.get_cycle_length()
        if cycle_length == 0:
            return 0.0

        green_time = sum(p.green_duration for p in self.phases if movement in p.movements)
        return green_time / cycle_length

    def get_status_string(self, time: float) -> str:
        """Retorna una representación legible del estado en el tiempo dado."""
        if not self.phases or not self.is_active:
            return "SEMÁFORO APAGADO"

        index, time_in_phase = self._locate(time)
        phase = self.phases[index]
        state = phase.get_state_at_time(time_in_phase)

        return (f"Fase: {phase.name} | Estado: {state.value.upper()} | "
                f"Tiempo en fase: {time_in_phase:.1f}s / {phase.total_duration}s")

    def __repr__(self) -> str:
        return (f"TrafficSignal(id={self.intersection_id}, "
                f"phases={len(self.phases)}, "
                f"cycle={self.get_cycle_length()}s, "
                f"offset={self.offset}s)")


def signal_from_dict(data: Dict) -> TrafficSignal:
    """
    Construye un semáforo desde su descripción JSON.

    Formato aceptado:
        {"intersection_id": 2, "offset": 0,
         "phases": {"north_south": 30, "east_west": 30}}
    o bien fases explícitas:
        {"intersection_id": 2,
         "phases": [{"name": "p1", "green_s": 20, "movements": ["a", "b"]}]}
    """
    signal = TrafficSignal(data['intersection_id'], data.get('name', ''))
    phases = data.get('phases', {})

    if isinstance(phases, dict):
        signal.set_configuration(phases, offset=data.get('offset', 0))
    else:
        signal.clear_phases()
        for phase in phases:
            signal.add_phase(phase['name'], phase['green_s'], phase['movements'])
        if not signal.phases:
            raise ValueError("Debe configurarse al menos una fase")
        signal.offset = max(SignalConfig.MIN_OFFSET,
                            min(data.get('offset', 0), SignalConfig.MAX_OFFSET))

    return signal

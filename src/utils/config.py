"""
Configuración global del núcleo de movilidad SimQueue.

Este módulo contiene todas las constantes y parámetros de configuración
utilizados en el proyecto. Cada componente toma sus valores por defecto
de aquí y permite sobreescribirlos en su constructor.
"""

import logging
from pathlib import Path
from typing import Optional

# Rutas del proyecto
PROJECT_ROOT = Path(__file__).parent.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
NETWORKS_DIR = DATA_DIR / "networks"
SCENARIOS_DIR = DATA_DIR / "scenarios"
RESULTS_DIR = PROJECT_ROOT / "experiments" / "results"

# Archivos de datos
DEMO_NETWORK_FILE = NETWORKS_DIR / "demo_crossing.json"
DEMO_SCENARIO_FILE = SCENARIOS_DIR / "demo_scenario.json"


# Parámetros del simulador
class SimulatorConfig:
    """Configuración del planificador (SimQueue) y de los agentes."""

    # Tiempo
    TIME_STEP = 1.0  # Duración de un tick en segundos
    DEFAULT_SIMULATION_DURATION = 3600  # 1 hora en segundos

    # Distancia de seguimiento por tipo de agente (metros)
    VEHICLE_FOLLOWING_DISTANCE = 5.0
    PEDESTRIAN_FOLLOWING_DISTANCE = 0.0  # Los peatones no respetan separación

    # Parte de la separación que depende de la velocidad (segundos)
    HEADWAY_TIME = 0.0

    # Velocidades
    VEHICLE_MAX_SPEED_KMH = 45  # km/h
    VEHICLE_MAX_SPEED_MS = VEHICLE_MAX_SPEED_KMH / 3.6  # m/s
    PEDESTRIAN_SPEED_MS = 1.34  # m/s (paso normal)

    # Debajo de esta velocidad un agente se considera detenido
    STOPPED_SPEED_THRESHOLD = 0.1  # m/s

    # Verificar invariantes de colas al final de cada tick
    CHECK_INVARIANTS = True


# Parámetros de semáforos
class SignalConfig:
    """Configuración de semáforos (oráculo de permisos de giro)."""

    MIN_GREEN_TIME = 10  # segundos
    MAX_GREEN_TIME = 90  # segundos
    DEFAULT_GREEN_TIME = 30  # segundos

    YELLOW_TIME = 3  # segundos
    ALL_RED_TIME = 1  # segundos (despeje)

    MIN_OFFSET = 0
    MAX_OFFSET = 120

    # Movimientos habilitados en verde para cada fase estándar.
    # Los peatones cruzan en paralelo al flujo vehicular habilitado.
    DEFAULT_PHASE_MOVEMENTS = {
        "north_south": ["north_south", "walk_north_south"],
        "east_west": ["east_west", "walk_east_west"],
        "left_turns": ["left_north_south", "left_east_west"],
    }


# Parámetros del rastreador de contactos
class ContactTrackerConfig:
    """Configuración del registro de co-presencia en veredas."""

    MEMORY_HORIZON = 300.0  # segundos que se recuerda un registro cerrado
    MIN_OVERLAP = 0.0  # segundos mínimos de solapamiento para reportar

    # Pesos de transmisión según el tipo de encuentro.
    # Son parámetros del modelo externo; por defecto no se distinguen.
    CROSSING_WEIGHT = 1.0
    FOLLOWING_WEIGHT = 1.0


# Métricas de evaluación
class MetricsConfig:
    """Configuración de métricas de evaluación."""

    METRICS = [
        "avg_travel_time",      # Tiempo de viaje promedio por agente (s)
        "avg_waiting_time",     # Tiempo detenido promedio (s)
        "avg_occupancy",        # Ocupación media por tramo
        "max_occupancy",        # Ocupación máxima observada
        "throughput_per_hour",  # Agentes que completan su ruta por hora
        "avg_stops",            # Paradas promedio por agente
        "proximity_events",     # Eventos de proximidad en veredas
        "computation_time",     # Tiempo de cómputo
    ]


# Logging
class LoggingConfig:
    """Configuración de logging."""

    LOG_LEVEL = "INFO"
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE = PROJECT_ROOT / "simulation.log"


def setup_logging(level: str = None, log_file: Optional[Path] = LoggingConfig.LOG_FILE):
    """
    Configura el logging del proyecto según LoggingConfig.

    Args:
        level: Nivel de logging (por defecto LoggingConfig.LOG_LEVEL)
        log_file: Archivo adicional de log (por defecto LoggingConfig.LOG_FILE;
            con None se escribe solo en consola)
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, (level or LoggingConfig.LOG_LEVEL).upper()),
        format=LoggingConfig.LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


# Crear directorios si no existen
def ensure_directories():
    """Crea los directorios necesarios si no existen."""
    for directory in [DATA_DIR, NETWORKS_DIR, SCENARIOS_DIR, RESULTS_DIR]:
        directory.mkdir(parents=True, exist_ok=True)


if __name__ == "__main__":
    print(f"Directorio del proyecto: {PROJECT_ROOT}")
    print(f"Directorio de datos: {DATA_DIR}")
    print(f"Archivo de red de ejemplo: {DEMO_NETWORK_FILE}")
    ensure_directories()
    print("Directorios verificados/creados correctamente")

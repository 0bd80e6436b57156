"""
Generador de agentes según escenarios de demanda.

Este módulo implementa la llegada de vehículos y peatones siguiendo un
proceso de Poisson por tipo de agente, con rutas elegidas entre un
conjunto ponderado definido en el escenario.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from .agent import Agent, AgentKind, Route
from .traversable_graph import TraversableGraph, TraversableId, parse_traversable

logger = logging.getLogger(__name__)


class SpawnScenario:
    """
    Representa un escenario de demanda: tasas de llegada y rutas por tipo.

    Formato JSON::

        {
          "scenario_name": "...",
          "seed": 42,
          "spawn": {
            "vehicle": {
              "lambda_per_minute": 6.0,
              "speed_ms": 12.5,
              "routes": [
                {"traversables": ["Lane#0", "Turn#0", "Lane#1"], "weight": 2},
                {"origin_lane": 0, "destination_lane": 3, "weight": 1}
              ]
            },
            "pedestrian": {"lambda_per_minute": 4.0, "contraflow_probability": 0.5, ...}
          }
        }
    """

    def __init__(self, scenario_file: Optional[str] = None, data: Optional[Dict] = None):
        """
        Carga un escenario desde archivo JSON o desde un diccionario.

        Args:
            scenario_file: Ruta al archivo JSON con datos del escenario
            data: Diccionario con el mismo formato (alternativa al archivo)
        """
        if scenario_file is not None:
            path = Path(scenario_file)
            if not path.exists():
                raise FileNotFoundError(f"Escenario no encontrado: {scenario_file}")

            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)

        if data is None:
            raise ValueError("Se necesita un archivo o un diccionario de escenario")

        self.scenario_file = scenario_file
        self._parse(data)

    def _parse(self, data: Dict):
        """Lee metadatos y parámetros de generación."""
        self.name = data.get('scenario_name', 'Unknown')
        self.description = data.get('description', '')
        self.seed = data.get('seed')
        self.simulation_duration = data.get('simulation_duration_s', 3600)

        self.spawn: Dict[AgentKind, Dict] = {}
        for kind_name, params in data.get('spawn', {}).items():
            kind = AgentKind(kind_name)

            lambda_per_minute = params.get('lambda_per_minute', 0.0)
            if lambda_per_minute < 0:
                raise ValueError(f"Tasa de llegada negativa para {kind_name}")

            routes = params.get('routes', [])
            if lambda_per_minute > 0 and not routes:
                raise ValueError(f"El escenario no define rutas para {kind_name}")

            self.spawn[kind] = {
                'lambda_per_minute': lambda_per_minute,
                'speed_ms': params.get('speed_ms'),
                'contraflow_probability': params.get('contraflow_probability', 0.0),
                'routes': routes
            }

        logger.info("Escenario cargado: %s (%s)", self.name,
                    ", ".join(f"{k.value}={v['lambda_per_minute']}/min"
                              for k, v in self.spawn.items()))

    def get_kinds(self) -> List[AgentKind]:
        """Tipos con demanda positiva, en orden fijo."""
        return [kind for kind in AgentKind
                if self.spawn.get(kind, {}).get('lambda_per_minute', 0) > 0]


class AgentGenerator:
    """
    Genera agentes según el escenario.

    Usa distribuciones de Poisson para modelar llegadas (tiempos entre
    llegadas exponenciales) y elige cada ruta con probabilidad
    proporcional a su peso. Los IDs son secuenciales, de modo que dos
    corridas con la misma semilla producen exactamente los mismos agentes.
    """

    def __init__(self, graph: TraversableGraph, scenario: SpawnScenario,
                 first_agent_id: int = 1):
        """
        Inicializa el generador.

        Args:
            graph: Red de tramos (para resolver y validar rutas)
            scenario: Escenario de demanda
            first_agent_id: ID del primer agente generado
        """
        self.graph = graph
        self.scenario = scenario
        self.first_agent_id = first_agent_id

        # Rutas resueltas y probabilidades por tipo
        self.routes: Dict[AgentKind, List[List[TraversableId]]] = {}
        self.route_probabilities: Dict[AgentKind, np.ndarray] = {}
        for kind in scenario.get_kinds():
            self._resolve_routes(kind)

        # Control de generación
        self.current_time = 0.0
        self.next_agent_id = first_agent_id
        self.next_spawn_time: Dict[AgentKind, float] = {kind: 0.0 for kind in AgentKind}
        self.generated_by_kind: Dict[AgentKind, int] = {kind: 0 for kind in AgentKind}

        self.random_seed = None
        self.rng = np.random.default_rng()
        if scenario.seed is not None:
            self.set_random_seed(scenario.seed)

    def _resolve_routes(self, kind: AgentKind):
        resolved = []
        weights = []

        for route_data in self.scenario.spawn[kind]['routes']:
            if 'traversables' in route_data:
                route = [parse_traversable(t) for t in route_data['traversables']]
            else:
                route = self.graph.get_shortest_route(route_data['origin_lane'],
                                                      route_data['destination_lane'])
                if route is None:
                    raise ValueError(
                        f"No hay ruta entre Lane#{route_data['origin_lane']} y "
                        f"Lane#{route_data['destination_lane']}")

            self.graph.validate_route(route)
            resolved.append(route)
            weights.append(float(route_data.get('weight', 1.0)))

        weights = np.array(weights)
        if np.any(weights < 0) or weights.sum() <= 0:
            raise ValueError(f"Pesos de ruta inválidos para {kind.value}")

        self.routes[kind] = resolved
        self.route_probabilities[kind] = weights / weights.sum()

    def set_random_seed(self, seed: int):
        """
        Establece semilla para reproducibilidad.

        Args:
            seed: Semilla para el generador aleatorio
        """
        self.random_seed = seed
        self.rng = np.random.default_rng(seed)

    def lambda_per_second(self, kind: AgentKind) -> float:
        return self.scenario.spawn.get(kind, {}).get('lambda_per_minute', 0.0) / 60.0

    def should_spawn(self, kind: AgentKind, current_time: float, dt: float) -> bool:
        """
        Determina si debe generarse un agente del tipo dado en este paso.

        Usa proceso de Poisson: llegadas siguen distribución exponencial.

        Args:
            kind: Tipo de agente
            current_time: Tiempo actual de simulación (segundos)
            dt: Paso de tiempo (segundos)

        Returns:
            bool: True si debe generarse un agente
        """
        self.current_time = max(self.current_time, current_time + dt)

        rate = self.lambda_per_second(kind)
        if rate <= 0 or current_time < self.next_spawn_time[kind]:
            return False

        # Tiempo entre llegadas ~ Exp(λ)
        inter_arrival_time = self.rng.exponential(1.0 / rate)
        self.next_spawn_time[kind] = current_time + inter_arrival_time
        return True

    def generate_agent(self, kind: AgentKind, current_time: float) -> Agent:
        """
        Genera un nuevo agente con una ruta del escenario.

        Args:
            kind: Tipo de agente
            current_time: Tiempo actual de simulación

        Returns:
            Agent: Nuevo agente (aún no ubicado en la red)
        """
        routes = self.routes.get(kind)
        if not routes:
            raise ValueError(f"El escenario no tiene rutas para {kind.value}")

        choice = int(self.rng.choice(len(routes), p=self.route_probabilities[kind]))
        params = self.scenario.spawn[kind]

        contraflow = False
        if kind == AgentKind.PEDESTRIAN and params['contraflow_probability'] > 0:
            contraflow = bool(self.rng.random() < params['contraflow_probability'])

        agent = Agent(
            agent_id=self.next_agent_id,
            kind=kind,
            route=Route(routes[choice]),
            speed=params['speed_ms'],
            spawn_time=current_time,
            contraflow=contraflow
        )

        self.next_agent_id += 1
        self.generated_by_kind[kind] += 1
        logger.debug("Generado %s con ruta %d", agent, choice)

        return agent

    def generate(self, current_time: float, dt: float) -> List[Agent]:
        """
        Agentes que llegan en el paso [current_time, current_time + dt).

        Returns:
            list: Agentes nuevos, vehículos primero
        """
        agents = []
        for kind in self.scenario.get_kinds():
            if self.should_spawn(kind, current_time, dt):
                agents.append(self.generate_agent(kind, current_time))
        return agents

    @property
    def total_agents_generated(self) -> int:
        return sum(self.generated_by_kind.values())

    def get_spawn_statistics(self) -> Dict:
        """
        Retorna estadísticas de generación de agentes.

        Returns:
            dict: Estadísticas de generación
        """
        stats = {
            'total_generated': self.total_agents_generated,
            'scenario_name': self.scenario.name,
            'seed': self.random_seed
        }

        for kind in AgentKind:
            generated = self.generated_by_kind[kind]
            if self.current_time > 0:
                actual_rate = (generated / self.current_time) * 3600
            else:
                actual_rate = 0
            stats[f'{kind.value}_generated'] = generated
            stats[f'{kind.value}_target_rate_per_hour'] = self.lambda_per_second(kind) * 3600
            stats[f'{kind.value}_actual_rate_per_hour'] = actual_rate

        return stats

    def reset(self):
        """Reinicia el generador (y su semilla, si tenía una)."""
        self.current_time = 0.0
        self.next_agent_id = self.first_agent_id
        self.next_spawn_time = {kind: 0.0 for kind in AgentKind}
        self.generated_by_kind = {kind: 0 for kind in AgentKind}

        if self.random_seed is not None:
            self.set_random_seed(self.random_seed)

"""
Motor SimQueue: avance tick a tick de todos los agentes.

Este módulo implementa el planificador que coordina la red de tramos,
las colas de ocupación, las políticas de anticipación por tipo de agente
y el despacho de eventos de ocupación.

Un tick se ejecuta en fases, siempre en el mismo orden:

1. Admisión de agentes pendientes (por ID ascendente).
2. Avance dentro de cada tramo, recorriendo los tramos en orden fijo y
   cada cola del frente hacia atrás (seguimiento vehicular).
3. Agentes sin ruta restante que alcanzan el final: terminan.
4. Solicitudes de paso al próximo tramo, agrupadas por destino (en orden
   fijo) y resueltas por ID de agente ascendente contra la ocupación
   vigente del destino.
5. Verificación de invariantes y publicación de los eventos del tick.

Cada agente cambia de cola a lo sumo una vez por tick.
"""

import logging
import time as timer
from typing import Dict, List, Optional

from .agent import Agent, AgentKind, AgentStatus
from .errors import ConsistencyFault, ReentrantMutationError, SimulationCorrupted
from .events import AgentEntersTraversable, AgentLeavesTraversable, EventBus, OccupancyEvent
from .lookahead import LookaheadPolicy, build_policies
from .occupancy_queue import Occupant, OccupancyQueue
from .traversable_graph import TraversableGraph, TraversableId
from ..utils.config import SimulatorConfig

logger = logging.getLogger(__name__)


class SimQueueScheduler:
    """
    Planificador principal de movimiento.

    Es el único dueño de las colas de ocupación y de la posición de los
    agentes. Un tick es atómico para quien llama: o se completa y se
    publican sus eventos, o falla por una inconsistencia y la simulación
    queda marcada como corrupta.
    """

    def __init__(self, graph: TraversableGraph,
                 dt: float = SimulatorConfig.TIME_STEP,
                 event_bus: Optional[EventBus] = None,
                 generator=None,
                 vehicle_following_distance: float = SimulatorConfig.VEHICLE_FOLLOWING_DISTANCE,
                 headway_time: float = SimulatorConfig.HEADWAY_TIME,
                 check_invariants: bool = SimulatorConfig.CHECK_INVARIANTS,
                 policies: Optional[Dict[AgentKind, LookaheadPolicy]] = None):
        """
        Inicializa el planificador.

        Args:
            graph: Red de tramos (solo lectura)
            dt: Duración por defecto de un tick (segundos)
            event_bus: Bus de eventos (se crea uno si no se indica)
            generator: AgentGenerator opcional que produce agentes cada tick
            vehicle_following_distance: Separación mínima entre vehículos (m)
            headway_time: Separación adicional proporcional a la velocidad (s)
            check_invariants: Verificar las colas al final de cada tick
            policies: Políticas por tipo de agente (por defecto build_policies)
        """
        if dt <= 0:
            raise ValueError(f"Duración de tick inválida: {dt}")

        self.graph = graph
        self.dt = dt
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.generator = generator
        self.check_invariants_enabled = check_invariants
        self.policies = policies or build_policies(graph, vehicle_following_distance,
                                                   headway_time)

        # Colas indexadas por tramo, recorridas siempre en el mismo orden
        self._order: List[TraversableId] = graph.all_traversables()
        self.queues: Dict[TraversableId, OccupancyQueue] = {
            traversable: OccupancyQueue(traversable) for traversable in self._order
        }

        # Agentes
        self.agents: Dict[int, Agent] = {}
        self.pending_spawns: List[Agent] = []
        self.finished_agents: List[Agent] = []

        # Estado de simulación
        self.current_time = 0.0
        self.tick_count = 0
        self.corrupted = False
        self._dispatching = False

        # Métricas
        self.occupancy_history: List[Dict] = []
        self.denials_by_reason: Dict[str, int] = {}
        self.transfers = 0
        self.real_time_start = None

        logger.info("Planificador inicializado: red=%s, tramos=%d, dt=%.2fs",
                    graph.network_name or "(sin nombre)", len(self._order), dt)

    # ------------------------------------------------------------------
    # Alta de agentes
    # ------------------------------------------------------------------

    def _check_mutable(self):
        if self.corrupted:
            raise SimulationCorrupted(
                "La simulación sufrió una falla de consistencia y no puede continuar")
        if self._dispatching:
            raise ReentrantMutationError(
                "Un suscriptor no puede modificar la simulación durante el despacho de eventos")

    def _validate_new_agent(self, agent: Agent):
        if agent.id in self.agents or any(p.id == agent.id for p in self.pending_spawns):
            raise ValueError(f"ID de agente duplicado: {agent.id}")
        if agent.has_finished():
            raise ValueError(f"{agent} ya completó su ruta")
        self.graph.validate_route(agent.route.traversables)

    def add_agent(self, agent: Agent, distance: float = 0.0):
        """
        Ubica un agente de inmediato sobre el tramo actual de su ruta.

        Publica AgentEntersTraversable en el tiempo actual.

        Args:
            agent: Agente a ubicar
            distance: Distancia inicial sobre el tramo (metros)

        Raises:
            ValueError: Si la ubicación es inválida o se superpone con un vehículo
        """
        self._check_mutable()
        self._validate_new_agent(agent)

        traversable = agent.route.current()
        length = self.graph.length(traversable)
        if not 0.0 <= distance <= length:
            raise ValueError(f"Distancia {distance} fuera de {traversable} (0..{length})")

        queue = self.queues[traversable]
        if agent.is_vehicle:
            gap = self.policies[agent.kind].required_gap(agent)
            for occupant in queue.snapshot():
                if occupant.kind == AgentKind.VEHICLE and abs(occupant.distance - distance) < gap:
                    raise ValueError(
                        f"{agent} quedaría a menos de {gap}m del agente #{occupant.agent_id}")

        self._place(agent, traversable, distance)
        agent.status = AgentStatus.MOVING
        logger.debug("%s ubicado en %s a %.2fm", agent, traversable, distance)

        self._dispatch([self._enter_event(agent, traversable, self.current_time)])

    def spawn(self, agent: Agent):
        """
        Encola un agente para ingresar en el próximo tick.

        El ingreso pasa por la misma política de anticipación que un
        cambio de tramo; si se niega, el agente sigue esperando (QUEUED).
        """
        self._check_mutable()
        self._validate_new_agent(agent)
        agent.status = AgentStatus.QUEUED
        self.pending_spawns.append(agent)

    def _place(self, agent: Agent, traversable: TraversableId, distance: float):
        self.queues[traversable].insert(agent, distance)
        agent.current = traversable
        agent.distance = distance
        self.agents[agent.id] = agent

    # ------------------------------------------------------------------
    # Ejecución
    # ------------------------------------------------------------------

    def run(self, duration: float, verbose: bool = False) -> Dict:
        """
        Ejecuta la simulación por un tiempo determinado.

        Args:
            duration: Duración de la simulación en segundos
            verbose: Si True, imprime progreso y resumen

        Returns:
            dict: Métricas finales de la simulación
        """
        logger.info("Iniciando simulación: %.0fs (%.1f minutos)", duration, duration / 60)
        self.real_time_start = timer.time()

        num_steps = int(round(duration / self.dt))
        report_every = max(1, num_steps // 10)

        for step in range(num_steps):
            self.step()

            if verbose and step % report_every == 0:
                self._print_progress()

        metrics = self.calculate_final_metrics()
        logger.info("Simulación completada: %d agentes terminados, %d activos",
                    metrics['agents_finished'], metrics['agents_active'])

        if verbose:
            self._print_summary(metrics)

        return metrics

    def step(self, tick_duration: Optional[float] = None) -> List[OccupancyEvent]:
        """
        Avanza toda la simulación un intervalo discreto.

        Args:
            tick_duration: Duración del tick (por defecto self.dt)

        Returns:
            list: Eventos publicados en este tick, en orden de emisión

        Raises:
            ConsistencyFault: Si la contabilidad de colas es inconsistente
            SimulationCorrupted: Si una falla anterior invalidó la simulación
        """
        self._check_mutable()

        dt = self.dt if tick_duration is None else tick_duration
        if dt <= 0:
            raise ValueError(f"Duración de tick inválida: {dt}")

        try:
            events = self._compute_tick(dt)
            if self.check_invariants_enabled:
                self.check_invariants()
        except ConsistencyFault as fault:
            self.corrupted = True
            logger.critical("Falla de consistencia en t=%.2f: %s", self.current_time, fault)
            raise

        self._record_occupancy()
        self.current_time += dt
        self.tick_count += 1

        self._dispatch(events)
        return events

    def _dispatch(self, events: List[OccupancyEvent]):
        self._dispatching = True
        try:
            self.event_bus.publish_all(events)
        except Exception:
            # El tick ya se aplicó y los suscriptores quedaron a medio actualizar
            self.corrupted = True
            logger.critical("Error al despachar eventos en t=%.2f", self.current_time)
            raise
        finally:
            self._dispatching = False

    def _compute_tick(self, dt: float) -> List[OccupancyEvent]:
        """Calcula y aplica un tick completo; retorna los eventos sin publicarlos."""
        now = self.current_time
        end = now + dt  # instante de los eventos y de los permisos del tick
        events: List[OccupancyEvent] = []
        admitted = set()

        # 1. Generación y admisión de agentes pendientes
        if self.generator is not None:
            for agent in self.generator.generate(now, dt):
                self.spawn(agent)

        if self.pending_spawns:
            still_pending = []
            for agent in sorted(self.pending_spawns, key=lambda a: a.id):
                if self._admit(agent, end, events):
                    admitted.add(agent.id)
                else:
                    still_pending.append(agent)
            self.pending_spawns = still_pending

        # 2. Avance dentro de cada tramo
        requests: Dict[TraversableId, List] = {}
        finishing = []

        for traversable in self._order:
            queue = self.queues[traversable]
            if not queue:
                continue
            self._advance_queue(traversable, queue, dt, admitted, requests, finishing)

        # 3. Rutas agotadas
        for agent in finishing:
            self._finish(agent, end, dt, events)

        # 4. Cambios de tramo, por destino y luego por ID
        for destination in sorted(requests):
            for agent, overflow in sorted(requests[destination], key=lambda r: r[0].id):
                self._resolve_transfer(agent, destination, overflow, end, dt, events)

        return events

    def _admit(self, agent: Agent, time: float, events: List[OccupancyEvent]) -> bool:
        traversable = agent.route.current()
        queue = self.queues[traversable]
        policy = self.policies[agent.kind]

        snapshot = queue.snapshot()
        decision = policy.can_advance(agent, traversable, snapshot, time)
        if not decision:
            logger.debug("Ingreso de %s a %s postergado: %r", agent, traversable, decision)
            return False

        landing = policy.landing_distance(agent, 0.0, self.graph.length(traversable), snapshot)
        self._place(agent, traversable, landing)
        agent.status = AgentStatus.MOVING
        events.append(self._enter_event(agent, traversable, time))
        logger.debug("%s ingresó a %s", agent, traversable)
        return True

    def _advance_queue(self, traversable: TraversableId, queue: OccupancyQueue, dt: float,
                       admitted: set, requests: Dict, finishing: List):
        """Avanza los agentes de una cola del frente hacia atrás."""
        length = self.graph.length(traversable)
        leader_distance = None  # posición final provisoria del vehículo de adelante

        for occupant in queue.snapshot():
            agent = self._agent_for(occupant, traversable)

            if agent.id in admitted:
                # Recién ingresado: no avanza, pero limita a los de atrás
                if agent.is_vehicle:
                    leader_distance = agent.distance
                continue

            policy = self.policies[agent.kind]
            desired = agent.distance + agent.speed * dt
            candidate = max(min(desired, policy.following_bound(agent, leader_distance)),
                            agent.distance)
            held_back = candidate < desired
            next_traversable = agent.route.next_traversable()

            if next_traversable is None and candidate >= length:
                finishing.append(agent)
                provisional = length
            elif candidate > length:
                requests.setdefault(next_traversable, []).append((agent, candidate - length))
                provisional = length
            else:
                advanced = candidate - agent.distance
                queue.update(agent.id, candidate)
                agent.distance = candidate
                agent.status = AgentStatus.QUEUED if held_back else AgentStatus.MOVING
                agent.record_tick(advanced, dt)
                provisional = candidate

            if agent.is_vehicle:
                if leader_distance is not None and provisional >= leader_distance:
                    raise ConsistencyFault(
                        f"{agent} alcanzaría al vehículo de adelante en {traversable}")
                leader_distance = provisional

    def _agent_for(self, occupant: Occupant, traversable: TraversableId) -> Agent:
        agent = self.agents.get(occupant.agent_id)
        if agent is None:
            raise ConsistencyFault(
                f"Agente #{occupant.agent_id} figura en {traversable} pero no está activo")
        if agent.current != traversable:
            raise ConsistencyFault(
                f"{agent} figura en la cola de {traversable} pero su tramo es {agent.current}")
        return agent

    def _finish(self, agent: Agent, time: float, dt: float, events: List[OccupancyEvent]):
        traversable = agent.current
        length = self.graph.length(traversable)

        self.queues[traversable].remove(agent.id)
        agent.record_tick(length - agent.distance, dt)
        agent.distance = length
        agent.current = None
        agent.status = AgentStatus.FINISHED
        agent.finish_time = time
        agent.segments_completed += 1

        del self.agents[agent.id]
        self.finished_agents.append(agent)

        events.append(self._leave_event(agent, traversable, time))
        logger.debug("%s completó su ruta en %s", agent, traversable)

    def _resolve_transfer(self, agent: Agent, destination: TraversableId, overflow: float,
                          time: float, dt: float, events: List[OccupancyEvent]):
        """Consulta la política y mueve al agente o lo detiene al final del tramo."""
        source = agent.current
        source_queue = self.queues[source]
        source_length = self.graph.length(source)
        destination_queue = self.queues[destination]
        policy = self.policies[agent.kind]

        snapshot = destination_queue.snapshot()
        decision = policy.can_advance(agent, destination, snapshot, time)

        if not decision:
            advanced = source_length - agent.distance
            source_queue.update(agent.id, source_length)
            agent.distance = source_length
            agent.status = AgentStatus.WAITING_FOR_PERMISSION
            agent.record_tick(advanced, dt)

            reason = decision.reason.value
            self.denials_by_reason[reason] = self.denials_by_reason.get(reason, 0) + 1
            logger.debug("%s espera en %s para pasar a %s: %s", agent, source, destination, reason)
            return

        landing = policy.landing_distance(agent, overflow, self.graph.length(destination),
                                          snapshot)
        advanced = (source_length - agent.distance) + landing

        source_queue.remove(agent.id)
        agent.route.advance()
        if agent.route.current() != destination:
            raise ConsistencyFault(
                f"La ruta de {agent} no coincide con el tramo concedido {destination}")

        destination_queue.insert(agent, landing)
        agent.current = destination
        agent.distance = landing
        agent.status = AgentStatus.MOVING
        agent.segments_completed += 1
        agent.record_tick(advanced, dt)
        self.transfers += 1

        events.append(self._leave_event(agent, source, time))
        events.append(self._enter_event(agent, destination, time))
        logger.debug("%s pasó de %s a %s (%.2fm)", agent, source, destination, landing)

    @staticmethod
    def _enter_event(agent: Agent, traversable: TraversableId, time: float):
        return AgentEntersTraversable(agent.id, agent.kind, traversable, time, agent.contraflow)

    @staticmethod
    def _leave_event(agent: Agent, traversable: TraversableId, time: float):
        return AgentLeavesTraversable(agent.id, agent.kind, traversable, time, agent.contraflow)

    # ------------------------------------------------------------------
    # Invariantes y consultas
    # ------------------------------------------------------------------

    def check_invariants(self):
        """
        Verifica la consistencia entre colas y agentes.

        Raises:
            ConsistencyFault: Ante cualquier discrepancia
        """
        seen = 0
        for traversable in self._order:
            queue = self.queues[traversable]
            length = self.graph.length(traversable)

            for occupant in queue.snapshot():
                agent = self._agent_for(occupant, traversable)
                if agent.distance != occupant.distance:
                    raise ConsistencyFault(
                        f"{agent}: distancia {agent.distance} ≠ {occupant.distance} en la cola")
                if not 0.0 <= agent.distance <= length:
                    raise ConsistencyFault(
                        f"{agent}: distancia {agent.distance} fuera de {traversable}")
                seen += 1

            if not queue.check_no_passing():
                raise ConsistencyFault(f"Vehículos superpuestos o desordenados en {traversable}")

        if seen != len(self.agents):
            raise ConsistencyFault(
                f"{len(self.agents)} agentes activos pero {seen} en las colas")

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        """Retorna un agente activo, pendiente o terminado."""
        if agent_id in self.agents:
            return self.agents[agent_id]
        for agent in self.pending_spawns + self.finished_agents:
            if agent.id == agent_id:
                return agent
        return None

    def occupancy(self, traversable: TraversableId):
        """Instantánea de la cola de un tramo (frente primero)."""
        return self.queues[traversable].snapshot()

    @property
    def active_agents(self) -> List[Agent]:
        return [self.agents[agent_id] for agent_id in sorted(self.agents)]

    def _record_occupancy(self):
        """Registra la ocupación de los tramos no vacíos."""
        occupancy = {}
        waiting = 0
        for traversable in self._order:
            queue = self.queues[traversable]
            if queue:
                occupancy[str(traversable)] = len(queue)

        for agent in self.agents.values():
            if agent.status == AgentStatus.WAITING_FOR_PERMISSION:
                waiting += 1

        self.occupancy_history.append({
            'time': self.current_time,
            'occupancy': occupancy,
            'waiting_for_permission': waiting,
            'pending_spawns': len(self.pending_spawns)
        })

    def calculate_final_metrics(self) -> Dict:
        """
        Calcula métricas finales de la simulación.

        Returns:
            dict: Diccionario con todas las métricas
        """
        from ..utils.metrics import MetricsCalculator

        computation_time = 0.0
        if self.real_time_start:
            computation_time = timer.time() - self.real_time_start

        finished = self.finished_agents

        return {
            'avg_travel_time': MetricsCalculator.average_travel_time(finished),
            'avg_waiting_time': MetricsCalculator.average_waiting_time(finished),
            'avg_stops': MetricsCalculator.average_stops(finished),
            'avg_speed_kmh': MetricsCalculator.average_speed(finished),
            'avg_occupancy': MetricsCalculator.average_occupancy(self.occupancy_history),
            'max_occupancy': MetricsCalculator.max_occupancy(self.occupancy_history),
            'throughput_per_hour': MetricsCalculator.throughput(finished, self.current_time),
            'transfers': self.transfers,
            'denials': dict(self.denials_by_reason),
            'agents_finished': len(finished),
            'agents_active': len(self.agents),
            'agents_pending': len(self.pending_spawns),
            'computation_time': computation_time,
            'simulation_time': self.current_time
        }

    def get_current_state(self) -> Dict:
        """
        Retorna el estado actual completo de la simulación.

        Returns:
            dict: Estado actual
        """
        statuses: Dict[str, int] = {}
        for agent in self.agents.values():
            statuses[agent.status.value] = statuses.get(agent.status.value, 0) + 1

        return {
            'time': self.current_time,
            'tick': self.tick_count,
            'active_agents': len(self.agents),
            'finished_agents': len(self.finished_agents),
            'pending_spawns': len(self.pending_spawns),
            'statuses': statuses,
            'queues': {
                str(traversable): self.queues[traversable].agent_ids()
                for traversable in self._order if self.queues[traversable]
            },
            'corrupted': self.corrupted
        }

    def _print_progress(self):
        """Imprime progreso de la simulación."""
        print(f"[T={self.current_time:6.0f}s] "
              f"Activos: {len(self.agents):3d} | "
              f"Terminados: {len(self.finished_agents):3d} | "
              f"Pendientes: {len(self.pending_spawns):3d}")

    def _print_summary(self, metrics: Dict):
        """
        Imprime resumen de métricas finales.

        Args:
            metrics: Diccionario de métricas
        """
        print(f"\nAgentes:")
        print(f"  Terminados:  {metrics['agents_finished']}")
        print(f"  Activos:     {metrics['agents_active']}")
        print(f"  Pendientes:  {metrics['agents_pending']}")
        print(f"  Throughput:  {metrics['throughput_per_hour']:.1f} agentes/hora")

        print(f"\nTiempos:")
        print(f"  Viaje promedio:       {metrics['avg_travel_time']:.2f} s")
        print(f"  Espera promedio:      {metrics['avg_waiting_time']:.2f} s")

        print(f"\nOcupación:")
        print(f"  Promedio por tramo:   {metrics['avg_occupancy']:.2f} agentes")
        print(f"  Máxima:               {metrics['max_occupancy']} agentes")
        print(f"  Cambios de tramo:     {metrics['transfers']}")
        print(f"  Permisos denegados:   {sum(metrics['denials'].values())}")

        print(f"\nRendimiento:")
        print(f"  Tiempo de simulación: {metrics['simulation_time']:.0f} s")
        print(f"  Tiempo de cómputo:    {metrics['computation_time']:.2f} s")

    def reset(self):
        """Reinicia el planificador al estado inicial (sin agentes)."""
        if self._dispatching:
            raise ReentrantMutationError("No se puede reiniciar durante el despacho de eventos")

        for queue in self.queues.values():
            queue.clear()
        self.agents.clear()
        self.pending_spawns.clear()
        self.finished_agents.clear()
        self.occupancy_history.clear()
        self.denials_by_reason.clear()
        self.transfers = 0
        self.current_time = 0.0
        self.tick_count = 0
        self.corrupted = False

        if self.generator is not None:
            self.generator.reset()

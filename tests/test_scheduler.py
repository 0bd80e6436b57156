"""
Tests para el planificador SimQueue.
"""

import pytest
import sys
from pathlib import Path

# Agregar src al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.simqueue import (
    TraversableGraph, Lane, lane_id, turn_id, Agent, AgentKind, AgentStatus, Route,
    SimQueueScheduler, EventBus, EventRecorder, AgentEntersTraversable,
    AgentLeavesTraversable, AgentGenerator, SpawnScenario,
    ConsistencyFault, SimulationCorrupted, ReentrantMutationError, DenyReason
)
from src.pandemic import ContactTracker, ContactOrdering, ExposureLog
from src.utils.config import DEMO_NETWORK_FILE, DEMO_SCENARIO_FILE

VEHICLE_ROUTE = [lane_id(0), turn_id(0), lane_id(1)]
PEDESTRIAN_ROUTE = [lane_id(2), turn_id(1), lane_id(3)]


def build_graph():
    """
    Calzada 0 (20m) → giro 0 (10m) → calzada 1 (50m) y
    vereda 2 (10m) → cruce 1 (5m) → vereda 3 (10m).

    Los permisos de giro se controlan con el dict retornado.
    """
    graph = TraversableGraph()
    graph.add_lane(0, 20.0)
    graph.add_lane(1, 50.0)
    graph.add_lane(2, 10.0, lane_type=Lane.SIDEWALK, two_way=True)
    graph.add_lane(3, 10.0, lane_type=Lane.SIDEWALK, two_way=True)
    graph.add_turn(0, 0, 1, 10.0, intersection_id=1, movement="m")
    graph.add_turn(1, 2, 3, 5.0, intersection_id=1, movement="walk_m")

    permission = {'allowed': True}
    graph.set_permission_oracle(lambda turn, time: permission['allowed'])
    return graph, permission


def build_scheduler(graph, **kwargs):
    bus = EventBus()
    recorder = EventRecorder()
    bus.subscribe(recorder)
    scheduler = SimQueueScheduler(graph, dt=1.0, event_bus=bus,
                                  vehicle_following_distance=5.0, **kwargs)
    return scheduler, recorder


def vehicle(agent_id, speed=10.0, route=None):
    return Agent(agent_id, AgentKind.VEHICLE, Route(route or VEHICLE_ROUTE), speed)


def pedestrian(agent_id, speed=1.0, route=None, contraflow=False):
    return Agent(agent_id, AgentKind.PEDESTRIAN, Route(route or PEDESTRIAN_ROUTE), speed,
                 contraflow=contraflow)


def build_demo(seed=None):
    """Red y escenario de demostración con registro de eventos."""
    graph = TraversableGraph(str(DEMO_NETWORK_FILE))
    generator = AgentGenerator(graph, SpawnScenario(str(DEMO_SCENARIO_FILE)))
    if seed is not None:
        generator.set_random_seed(seed)

    bus = EventBus()
    recorder = EventRecorder()
    bus.subscribe(recorder)
    scheduler = SimQueueScheduler(graph, event_bus=bus, generator=generator)
    return scheduler, recorder


class TestFollowing:
    """Tests de seguimiento vehicular dentro de un carril."""

    def test_two_vehicles_with_denied_turn(self):
        """A en 0 y B en 20 (fin del carril, giro denegado): A avanza a 10, B queda en 20."""
        graph, permission = build_graph()
        scheduler, _ = build_scheduler(graph)
        permission['allowed'] = False

        a = vehicle(1)
        b = vehicle(2)
        scheduler.add_agent(b, 20.0)
        scheduler.add_agent(a, 0.0)

        events = scheduler.step()

        assert a.distance == 10.0
        assert a.status == AgentStatus.MOVING
        assert b.distance == 20.0
        assert b.status == AgentStatus.WAITING_FOR_PERMISSION
        assert b.current == lane_id(0)
        assert events == []
        assert [o.agent_id for o in scheduler.occupancy(lane_id(0))] == [2, 1]

    def test_follower_held_back_by_gap(self):
        """El de atrás se detiene a la separación requerida."""
        graph, permission = build_graph()
        scheduler, _ = build_scheduler(graph)
        permission['allowed'] = False

        a = vehicle(1)
        b = vehicle(2)
        scheduler.add_agent(b, 20.0)
        scheduler.add_agent(a, 0.0)

        scheduler.step()
        scheduler.step()

        assert a.distance == 15.0
        assert a.status == AgentStatus.QUEUED
        assert b.distance == 20.0

    def test_release_after_permission(self):
        """Al habilitarse el giro, B pasa y A lo sigue un tick después."""
        graph, permission = build_graph()
        scheduler, _ = build_scheduler(graph)
        permission['allowed'] = False

        a = vehicle(1)
        b = vehicle(2)
        scheduler.add_agent(b, 20.0)
        scheduler.add_agent(a, 0.0)
        scheduler.step()
        scheduler.step()

        permission['allowed'] = True
        events = scheduler.step()

        assert events == [
            AgentLeavesTraversable(2, AgentKind.VEHICLE, lane_id(0), 3.0),
            AgentEntersTraversable(2, AgentKind.VEHICLE, turn_id(0), 3.0),
        ]
        assert b.current == turn_id(0)
        assert b.distance == 10.0
        assert a.distance == 15.0

        scheduler.step()

        assert b.current == lane_id(1)
        assert b.distance == 10.0
        assert a.current == turn_id(0)
        assert a.distance == 5.0
        assert a.segments_completed == 1

    def test_vehicle_finishes_route(self):
        """Al final de la ruta el agente termina y sale de todas las colas."""
        graph, _ = build_graph()
        scheduler, recorder = build_scheduler(graph)

        a = vehicle(1, speed=20.0, route=[lane_id(1)])
        scheduler.add_agent(a, 40.0)
        events = scheduler.step()

        assert a.status == AgentStatus.FINISHED
        assert a.finish_time == 1.0
        assert a.current is None
        assert events == [AgentLeavesTraversable(1, AgentKind.VEHICLE, lane_id(1), 1.0)]
        assert scheduler.finished_agents == [a]
        assert scheduler.active_agents == []
        assert len(scheduler.queues[lane_id(1)]) == 0


class TestPedestrians:
    """Tests de peatones en veredas y cruces."""

    def test_crossing_denied(self):
        """Peatón al final de la vereda con cruce denegado: espera sin emitir eventos."""
        graph, permission = build_graph()
        scheduler, recorder = build_scheduler(graph)
        permission['allowed'] = False

        p = pedestrian(1, speed=1.34)
        scheduler.add_agent(p, 10.0)
        recorder.clear()

        events = scheduler.step()

        assert p.status == AgentStatus.WAITING_FOR_PERMISSION
        assert p.distance == 10.0
        assert p.current == lane_id(2)
        assert events == []
        assert scheduler.occupancy(turn_id(1)) == ()

        permission['allowed'] = True
        events = scheduler.step()

        assert [type(e) for e in events] == [AgentLeavesTraversable, AgentEntersTraversable]
        assert p.current == turn_id(1)
        assert p.distance == pytest.approx(1.34)

    def test_pedestrians_may_overlap(self):
        """Dos peatones pueden ocupar la misma posición."""
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)

        p1 = pedestrian(1)
        p2 = pedestrian(2)
        scheduler.add_agent(p1, 3.0)
        scheduler.add_agent(p2, 3.0)
        scheduler.step()

        assert p1.distance == p2.distance == 4.0
        assert [o.agent_id for o in scheduler.occupancy(lane_id(2))] == [1, 2]

    def test_copresence_through_scheduler(self):
        """P1 en la vereda de t=0 a t=10 y P2 de t=5 a t=15: un evento [5, 10]."""
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)
        tracker = ContactTracker(graph)
        tracker.attach(scheduler.event_bus)
        exposure = ExposureLog()
        tracker.add_listener(exposure)

        scheduler.add_agent(pedestrian(1, route=[lane_id(2)]), 0.0)
        for _ in range(5):
            scheduler.step()
        scheduler.add_agent(pedestrian(2, route=[lane_id(2)]), 0.0)
        for _ in range(10):
            scheduler.step()

        assert scheduler.current_time == 15.0
        assert len(scheduler.finished_agents) == 2
        assert len(exposure) == 1

        event = exposure.events[0]
        assert {event.agent_a, event.agent_b} == {1, 2}
        assert event.traversable == lane_id(2)
        assert (event.overlap_start, event.overlap_end) == (5.0, 10.0)
        assert event.ordering == ContactOrdering.FOLLOWING


class TestSpawning:
    """Tests de admisión de agentes nuevos."""

    def test_spawn_admitted_next_tick(self):
        """El agente ingresa en el próximo tick y no avanza en ese tick."""
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)

        a = vehicle(1)
        scheduler.spawn(a)
        assert a.status == AgentStatus.QUEUED
        assert a.current is None

        events = scheduler.step()

        assert events == [AgentEntersTraversable(1, AgentKind.VEHICLE, lane_id(0), 1.0)]
        assert a.current == lane_id(0)
        assert a.distance == 0.0
        assert a.status == AgentStatus.MOVING

    def test_spawn_waits_for_gap(self):
        """Sin espacio en la entrada, el agente sigue pendiente."""
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)

        x = vehicle(1, speed=3.0)
        scheduler.add_agent(x, 2.0)
        y = vehicle(2)
        scheduler.spawn(y)

        scheduler.step()

        assert y.status == AgentStatus.QUEUED
        assert y in scheduler.pending_spawns
        assert 2 not in scheduler.agents
        assert x.distance == 5.0

        scheduler.step()

        assert y.current == lane_id(0)
        assert y.distance == 0.0
        assert scheduler.pending_spawns == []


class TestPlacementValidation:
    """Tests de validación de entradas."""

    def test_invalid_placements(self):
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)
        scheduler.add_agent(vehicle(1), 10.0)

        with pytest.raises(ValueError):
            scheduler.add_agent(vehicle(2), 25.0)  # Fuera del carril
        with pytest.raises(ValueError):
            scheduler.add_agent(vehicle(3), 12.0)  # Dentro de la separación
        with pytest.raises(ValueError):
            scheduler.add_agent(vehicle(1), 0.0)   # ID duplicado
        with pytest.raises(ValueError):
            scheduler.spawn(vehicle(4, route=[lane_id(0), lane_id(1)]))  # Ruta desconectada
        with pytest.raises(KeyError):
            scheduler.spawn(vehicle(5, route=[lane_id(9)]))

    def test_invalid_tick(self):
        graph, _ = build_graph()

        with pytest.raises(ValueError):
            SimQueueScheduler(graph, dt=0.0)

        scheduler, _ = build_scheduler(graph)
        with pytest.raises(ValueError):
            scheduler.step(-1.0)


class TestTickProperties:
    """Propiedades que valen en todo tick."""

    def test_one_transfer_per_tick(self):
        """Un agente rápido cambia de cola a lo sumo una vez por tick."""
        graph = TraversableGraph()
        for index in range(3):
            graph.add_lane(index, 1.0, lane_type=Lane.SIDEWALK)
        graph.add_turn(0, 0, 1, 1.0)
        graph.add_turn(1, 1, 2, 1.0)
        scheduler, _ = build_scheduler(graph)

        route = [lane_id(0), turn_id(0), lane_id(1), turn_id(1), lane_id(2)]
        p = pedestrian(1, speed=10.0, route=route)
        scheduler.add_agent(p, 0.0)

        for expected in route[1:]:
            events = scheduler.step()
            assert len([e for e in events if isinstance(e, AgentEntersTraversable)]) == 1
            assert p.current == expected
            assert p.distance == 1.0

        scheduler.step()
        assert p.status == AgentStatus.FINISHED
        assert p.finish_time == 5.0

    def build_merge(self, speed):
        """
        Dos giros de 5m (desde las calzadas 0 y 1) que desembocan en la
        calzada 2. El vehículo #2 está al final del giro 0 y el #1 al final
        del giro 1, de modo que el orden por ID es inverso al de los tramos.
        """
        graph = TraversableGraph()
        graph.add_lane(0, 20.0)
        graph.add_lane(1, 20.0)
        graph.add_lane(2, 50.0)
        graph.add_turn(0, 0, 2, 5.0)
        graph.add_turn(1, 1, 2, 5.0)
        graph.set_permission_oracle(lambda turn, time: True)
        scheduler, _ = build_scheduler(graph)

        a = vehicle(2, speed=speed, route=[turn_id(0), lane_id(2)])
        b = vehicle(1, speed=speed, route=[turn_id(1), lane_id(2)])
        scheduler.add_agent(a, 5.0)
        scheduler.add_agent(b, 5.0)
        return scheduler, a, b

    def test_merge_resolved_by_id(self):
        """Con sobrante menor al gap, entra el ID menor y el otro espera."""
        scheduler, a, b = self.build_merge(speed=3.0)

        scheduler.step()

        assert b.current == lane_id(2)
        assert b.distance == 3.0
        assert b.status == AgentStatus.MOVING

        assert a.current == turn_id(0)
        assert a.distance == 5.0
        assert a.status == AgentStatus.WAITING_FOR_PERMISSION
        assert scheduler.denials_by_reason == {DenyReason.INSUFFICIENT_GAP.value: 1}

    def test_merge_both_admitted(self):
        """Con sobrante amplio entran ambos, el segundo a la separación requerida."""
        scheduler, a, b = self.build_merge(speed=8.0)
        gap = scheduler.policies[AgentKind.VEHICLE].required_gap(a)

        scheduler.step()

        assert b.current == lane_id(2)
        assert b.distance == 8.0
        assert a.current == lane_id(2)
        assert a.distance == b.distance - gap
        assert scheduler.queues[lane_id(2)].agent_ids() == [1, 2]
        assert scheduler.denials_by_reason == {}

    def test_no_overlap_and_conservation(self):
        """Sobre la red de demostración: sin superposición y sin pérdida de agentes."""
        scheduler, _ = build_demo()
        generator = scheduler.generator

        for _ in range(400):
            scheduler.step()

            for traversable, queue in scheduler.queues.items():
                assert queue.check_no_passing()
                for occupant in queue.snapshot():
                    assert 0.0 <= occupant.distance <= scheduler.graph.length(traversable)

            in_queues = [agent_id for q in scheduler.queues.values() for agent_id in q.agent_ids()]
            finished = [a.id for a in scheduler.finished_agents]
            pending = [a.id for a in scheduler.pending_spawns]

            assert len(in_queues) == len(set(in_queues))
            assert set(in_queues) == set(scheduler.agents)
            assert not set(in_queues) & set(finished)
            assert len(in_queues) + len(finished) + len(pending) == \
                generator.total_agents_generated

        assert len(scheduler.finished_agents) > 0

    def test_event_pairing(self):
        """Cada ingreso se cierra con una salida antes del próximo ingreso."""
        scheduler, recorder = build_demo()
        scheduler.run(400)

        open_traversable = {}
        for event in recorder.events:
            if isinstance(event, AgentEntersTraversable):
                assert event.agent_id not in open_traversable
                open_traversable[event.agent_id] = event.traversable
            else:
                assert open_traversable.pop(event.agent_id) == event.traversable

        assert set(open_traversable) == set(scheduler.agents)

    def test_permission_respected(self):
        """Nadie ingresa a un giro cuyo permiso era falso en ese tick."""
        scheduler, recorder = build_demo()
        scheduler.run(400)

        turn_entries = [e for e in recorder.enters() if e.traversable.is_turn]
        assert turn_entries
        for event in turn_entries:
            assert scheduler.graph.turn_permission(event.traversable, event.time)

    def test_determinism(self):
        """Mismo estado inicial y misma secuencia de ticks: mismos eventos."""
        first, first_log = build_demo(seed=7)
        second, second_log = build_demo(seed=7)

        first.run(300)
        second.run(300)

        assert len(first_log) > 0
        assert first_log.events == second_log.events


class TestFaults:
    """Tests de fallas de consistencia y reentrada."""

    def test_fault_is_atomic(self):
        """Un tick con falla no publica eventos y deja la simulación corrupta."""
        graph, _ = build_graph()
        scheduler, recorder = build_scheduler(graph)

        a = vehicle(1, speed=30.0)
        p = pedestrian(2)
        scheduler.add_agent(a, 0.0)
        scheduler.add_agent(p, 0.0)
        published = len(recorder)

        # Contabilidad rota a propósito
        scheduler.queues[lane_id(2)].remove(p.id)

        with pytest.raises(ConsistencyFault):
            scheduler.step()

        assert len(recorder) == published
        assert scheduler.corrupted
        assert scheduler.current_time == 0.0

        with pytest.raises(SimulationCorrupted):
            scheduler.step()
        with pytest.raises(SimulationCorrupted):
            scheduler.add_agent(vehicle(3), 10.0)

    def test_mismatched_current_traversable(self):
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)

        a = vehicle(1)
        scheduler.add_agent(a, 0.0)
        a.current = lane_id(1)

        with pytest.raises(ConsistencyFault):
            scheduler.step()
        assert scheduler.corrupted

    def test_reset_clears_corruption(self):
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)
        scheduler.add_agent(vehicle(1), 0.0)
        scheduler.queues[lane_id(0)].clear()

        with pytest.raises(ConsistencyFault):
            scheduler.step()

        scheduler.reset()
        assert not scheduler.corrupted
        scheduler.step()
        assert scheduler.current_time == 1.0

    def test_handler_cannot_mutate(self):
        """Un suscriptor que intenta mutar el planificador recibe un error."""
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)
        scheduler.add_agent(vehicle(1, route=[lane_id(1)], speed=60.0), 0.0)

        def meddling_handler(event):
            scheduler.spawn(vehicle(99))

        scheduler.event_bus.subscribe(meddling_handler)

        with pytest.raises(ReentrantMutationError):
            scheduler.step()
        assert scheduler.corrupted

    def test_handler_error_marks_corrupted(self):
        """Un error cualquiera de un suscriptor deja el tick a medio publicar."""
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)
        scheduler.add_agent(vehicle(1, route=[lane_id(1)], speed=60.0), 0.0)

        def failing_handler(event):
            raise RuntimeError("suscriptor roto")

        scheduler.event_bus.subscribe(failing_handler)

        with pytest.raises(RuntimeError):
            scheduler.step()
        assert scheduler.corrupted
        assert scheduler.current_time == 1.0

        with pytest.raises(SimulationCorrupted):
            scheduler.step()

    def test_handler_can_read(self):
        """Las consultas de solo lectura están permitidas durante el despacho."""
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)
        seen = []

        def reading_handler(event):
            seen.append(len(scheduler.occupancy(event.traversable)))

        scheduler.event_bus.subscribe(reading_handler)
        scheduler.add_agent(vehicle(1), 0.0)
        scheduler.step()

        assert seen == [1]


class TestRunAndMetrics:
    """Tests de ejecución completa y métricas."""

    def test_run_returns_metrics(self):
        scheduler, _ = build_demo()
        metrics = scheduler.run(duration=120, verbose=False)

        for key in ['avg_travel_time', 'avg_waiting_time', 'avg_occupancy', 'max_occupancy',
                    'throughput_per_hour', 'agents_finished', 'computation_time']:
            assert key in metrics
        assert metrics['simulation_time'] == 120.0
        assert len(scheduler.occupancy_history) == 120

    def test_current_state(self):
        scheduler, _ = build_demo()
        for _ in range(30):
            scheduler.step()

        state = scheduler.get_current_state()

        assert state['time'] == 30.0
        assert state['tick'] == 30
        assert state['active_agents'] == sum(len(ids) for ids in state['queues'].values())
        assert not state['corrupted']

    def test_reset(self):
        scheduler, recorder = build_demo()
        scheduler.run(60)
        assert scheduler.current_time == 60.0

        scheduler.reset()

        assert scheduler.current_time == 0.0
        assert scheduler.agents == {}
        assert scheduler.finished_agents == []
        assert all(len(q) == 0 for q in scheduler.queues.values())
        assert scheduler.generator.total_agents_generated == 0

    def test_get_agent(self):
        graph, _ = build_graph()
        scheduler, _ = build_scheduler(graph)
        a = vehicle(1)
        b = vehicle(2)
        scheduler.add_agent(a, 0.0)
        scheduler.spawn(b)

        assert scheduler.get_agent(1) is a
        assert scheduler.get_agent(2) is b
        assert scheduler.get_agent(3) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

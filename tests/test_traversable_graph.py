"""
Tests para la red de tramos transitables.
"""

import pytest
import sys
from pathlib import Path

# Agregar src al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.simqueue.traversable_graph import (
    TraversableGraph, TraversableKind, Lane, lane_id, turn_id, parse_traversable
)
from src.utils.config import DEMO_NETWORK_FILE


def build_small_graph():
    """Dos carriles unidos por un giro, más una vereda suelta."""
    graph = TraversableGraph()
    graph.add_lane(0, 20.0)
    graph.add_lane(1, 50.0)
    graph.add_lane(2, 30.0, lane_type=Lane.SIDEWALK, two_way=True)
    graph.add_turn(0, 0, 1, 10.0, intersection_id=1, movement="north_south")
    return graph


class TestTraversableId:
    """Tests para los identificadores de tramo."""

    def test_lanes_before_turns(self):
        """Test del orden fijo: carriles antes que giros, luego por índice."""
        assert lane_id(5) < turn_id(0)
        assert lane_id(1) < lane_id(2)
        assert turn_id(0) < turn_id(3)
        assert sorted([turn_id(1), lane_id(3), turn_id(0), lane_id(0)]) == \
            [lane_id(0), lane_id(3), turn_id(0), turn_id(1)]

    def test_identity_and_hash(self):
        """Test de igualdad y uso como clave."""
        assert lane_id(3) == lane_id(3)
        assert lane_id(3) != turn_id(3)
        assert len({lane_id(1), lane_id(1), turn_id(1)}) == 2

    def test_string_and_parse(self):
        """Test de representación y parseo."""
        assert str(lane_id(4)) == "Lane#4"
        assert str(turn_id(7)) == "Turn#7"
        assert parse_traversable("Lane#4") == lane_id(4)
        assert parse_traversable("turn#7") == turn_id(7)

        with pytest.raises(ValueError):
            parse_traversable("Road#1")
        with pytest.raises(ValueError):
            parse_traversable("Lane4")


class TestTraversableGraph:
    """Tests para la clase TraversableGraph."""

    def test_build_from_code(self):
        """Test de construcción programática."""
        graph = build_small_graph()

        assert graph.length(lane_id(0)) == 20.0
        assert graph.length(turn_id(0)) == 10.0
        assert graph.connections(lane_id(0)) == [turn_id(0)]
        assert graph.connections(turn_id(0)) == [lane_id(1)]
        assert graph.connections(lane_id(1)) == []
        assert graph.all_traversables() == [lane_id(0), lane_id(1), lane_id(2), turn_id(0)]

    def test_invalid_elements(self):
        """Test de validación al construir."""
        graph = build_small_graph()

        with pytest.raises(ValueError):
            graph.add_lane(3, 0.0)
        with pytest.raises(ValueError):
            graph.add_lane(0, 10.0)  # Duplicado
        with pytest.raises(KeyError):
            graph.add_turn(1, 0, 99, 5.0)
        with pytest.raises(KeyError):
            graph.length(lane_id(42))

    def test_sidewalk(self):
        """Test de identificación de veredas."""
        graph = build_small_graph()

        assert graph.is_sidewalk(lane_id(2))
        assert not graph.is_sidewalk(lane_id(0))
        assert not graph.is_sidewalk(turn_id(0))

    def test_turn_permission_without_signal(self):
        """Un giro sin semáforo está habilitado."""
        graph = build_small_graph()

        assert graph.turn_permission(turn_id(0), 0.0)
        assert graph.turn_permission(lane_id(1), 0.0)

    def test_permission_oracle(self):
        """Test de delegación de permisos en un colaborador externo."""
        graph = build_small_graph()
        graph.set_permission_oracle(lambda turn, time: time >= 10)

        assert not graph.turn_permission(turn_id(0), 5.0)
        assert graph.turn_permission(turn_id(0), 10.0)

        # Los carriles nunca se restringen
        assert graph.turn_permission(lane_id(1), 5.0)

        graph.set_permission_oracle(None)
        assert graph.turn_permission(turn_id(0), 5.0)

    def test_validate_route(self):
        """Test de validación de rutas."""
        graph = build_small_graph()

        graph.validate_route([lane_id(0), turn_id(0), lane_id(1)])

        with pytest.raises(ValueError):
            graph.validate_route([lane_id(0), lane_id(1)])
        with pytest.raises(ValueError):
            graph.validate_route([])
        with pytest.raises(KeyError):
            graph.validate_route([lane_id(9)])


class TestNetworkFile:
    """Tests de carga de la red de demostración."""

    def test_load_demo_network(self):
        """Test de carga desde archivo."""
        graph = TraversableGraph(str(DEMO_NETWORK_FILE))

        stats = graph.get_network_stats()
        assert stats['num_lanes'] == 7
        assert stats['num_sidewalks'] == 3
        assert stats['num_turns'] == 5
        assert stats['num_signals'] == 1

    def test_shortest_route(self):
        """Test de ruta más corta."""
        graph = TraversableGraph(str(DEMO_NETWORK_FILE))

        assert graph.get_shortest_route(0, 3) == [lane_id(0), turn_id(2), lane_id(3)]
        assert graph.get_shortest_route(4, 6) == \
            [lane_id(4), turn_id(3), lane_id(5), turn_id(4), lane_id(6)]
        assert graph.get_shortest_route(1, 0) is None

        route = graph.get_shortest_route(0, 1)
        assert graph.get_path_length(route) == 215.0

    def test_signal_controls_turns(self):
        """Los giros del cruce obedecen al semáforo."""
        graph = TraversableGraph(str(DEMO_NETWORK_FILE))

        # t=10: fase north_south en verde
        assert graph.turn_permission(turn_id(0), 10.0)
        assert graph.turn_permission(turn_id(4), 10.0)  # walk_north_south
        assert not graph.turn_permission(turn_id(1), 10.0)
        assert not graph.turn_permission(turn_id(2), 10.0)

        # t=40: fase east_west en verde
        assert graph.turn_permission(turn_id(1), 40.0)
        assert graph.turn_permission(turn_id(3), 40.0)  # walk_east_west
        assert not graph.turn_permission(turn_id(0), 40.0)

    def test_missing_file(self):
        """Test de archivo inexistente."""
        with pytest.raises(FileNotFoundError):
            TraversableGraph("no_existe.json")

    def test_kinds(self):
        """Test de tipos de tramo en la red cargada."""
        graph = TraversableGraph(str(DEMO_NETWORK_FILE))

        kinds = {t.kind for t in graph.all_traversables()}
        assert kinds == {TraversableKind.LANE, TraversableKind.TURN}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

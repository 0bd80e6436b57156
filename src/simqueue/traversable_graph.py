"""
Modelo de la red de tramos transitables (carriles y giros) como grafo dirigido.

Este módulo implementa la red estática sobre la que se mueven los agentes:
los nodos del grafo son tramos transitables (Lane o Turn) y las aristas
indican a qué tramo se puede pasar al terminar el actual. La red se
construye una vez (desde código o desde un archivo JSON propio) y luego
el núcleo solo la consulta.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from functools import total_ordering
from pathlib import Path
from typing import Callable, Dict, List, Optional

import networkx as nx

from .signals import TrafficSignal, signal_from_dict

logger = logging.getLogger(__name__)


class TraversableKind(Enum):
    """Tipos de tramo transitable."""
    LANE = 0
    TURN = 1


@total_ordering
@dataclass(frozen=True)
class TraversableId:
    """
    Identidad de un tramo: (tipo, índice en la red).

    El orden total (carriles antes que giros, luego por índice) es el
    orden fijo en que el planificador recorre las colas.
    """
    kind: TraversableKind
    index: int

    def __lt__(self, other):
        if not isinstance(other, TraversableId):
            return NotImplemented
        return (self.kind.value, self.index) < (other.kind.value, other.index)

    @property
    def is_lane(self) -> bool:
        return self.kind == TraversableKind.LANE

    @property
    def is_turn(self) -> bool:
        return self.kind == TraversableKind.TURN

    def __str__(self) -> str:
        prefix = "Lane" if self.is_lane else "Turn"
        return f"{prefix}#{self.index}"


def lane_id(index: int) -> TraversableId:
    """Atajo para el identificador de un carril."""
    return TraversableId(TraversableKind.LANE, index)


def turn_id(index: int) -> TraversableId:
    """Atajo para el identificador de un giro."""
    return TraversableId(TraversableKind.TURN, index)


def parse_traversable(text: str) -> TraversableId:
    """
    Convierte "Lane#3" o "Turn#7" en un identificador.

    Raises:
        ValueError: Si el texto no tiene ese formato
    """
    prefix, sep, index = text.partition("#")
    if not sep or not index.isdigit():
        raise ValueError(f"Tramo mal formado: '{text}'")

    if prefix.lower() == "lane":
        return lane_id(int(index))
    if prefix.lower() == "turn":
        return turn_id(int(index))
    raise ValueError(f"Tipo de tramo desconocido: '{prefix}'")


class Lane:
    """
    Representa un carril recto: calzada vehicular o vereda peatonal.
    """

    DRIVING = "driving"
    SIDEWALK = "sidewalk"

    def __init__(self, index: int, length_m: float, lane_type: str = DRIVING,
                 two_way: bool = False, src_intersection: Optional[int] = None,
                 dst_intersection: Optional[int] = None, name: str = ""):
        """
        Inicializa un carril.

        Args:
            index: Índice del carril en la red
            length_m: Longitud en metros
            lane_type: "driving" o "sidewalk"
            two_way: Si admite circulación en ambos sentidos (veredas)
            src_intersection: ID de la intersección de origen (opcional)
            dst_intersection: ID de la intersección de destino (opcional)
            name: Nombre descriptivo (ej: "Av. Brasil, vereda norte")
        """
        if length_m <= 0:
            raise ValueError(f"Longitud de carril inválida: {length_m}")
        if lane_type not in (Lane.DRIVING, Lane.SIDEWALK):
            raise ValueError(f"Tipo de carril desconocido: {lane_type}")

        self.id = lane_id(index)
        self.index = index
        self.length_m = float(length_m)
        self.lane_type = lane_type
        self.two_way = two_way
        self.src_intersection = src_intersection
        self.dst_intersection = dst_intersection
        self.name = name

    @property
    def is_sidewalk(self) -> bool:
        return self.lane_type == Lane.SIDEWALK

    def __repr__(self) -> str:
        return (f"Lane(index={self.index}, length={self.length_m}m, "
                f"type={self.lane_type})")


class Turn:
    """
    Representa un giro: tramo que une dos carriles a través de una intersección.

    El movimiento (ej: "north_south", "walk_east_west") es la clave con la
    que se consulta al semáforo de la intersección.
    """

    def __init__(self, index: int, from_lane: int, to_lane: int, length_m: float,
                 intersection_id: Optional[int] = None, movement: str = ""):
        """
        Inicializa un giro.

        Args:
            index: Índice del giro en la red
            from_lane: Índice del carril de entrada
            to_lane: Índice del carril de salida
            length_m: Longitud del recorrido dentro de la intersección
            intersection_id: Intersección a la que pertenece
            movement: Movimiento controlado por el semáforo
        """
        if length_m <= 0:
            raise ValueError(f"Longitud de giro inválida: {length_m}")

        self.id = turn_id(index)
        self.index = index
        self.from_lane = lane_id(from_lane)
        self.to_lane = lane_id(to_lane)
        self.length_m = float(length_m)
        self.intersection_id = intersection_id
        self.movement = movement

    def __repr__(self) -> str:
        return (f"Turn(index={self.index}, {self.from_lane} → {self.to_lane}, "
                f"movement='{self.movement}')")


class TraversableGraph:
    """
    Red de tramos transitables G = (V, E).

    V son carriles y giros; E une cada carril con los giros que parten de
    él y cada giro con su carril de salida. La red es de solo lectura para
    el planificador y para el rastreador de contactos.
    """

    def __init__(self, network_file: Optional[str] = None):
        """
        Inicializa la red.

        Args:
            network_file: Ruta al archivo JSON con la red.
                          Si es None, crea una red vacía.
        """
        self.graph = nx.DiGraph()
        self.lanes: Dict[int, Lane] = {}
        self.turns: Dict[int, Turn] = {}
        self.signals: Dict[int, TrafficSignal] = {}

        # Colaborador externo de control de intersecciones (opcional)
        self._permission_oracle: Optional[Callable[[Turn, float], bool]] = None

        self.network_name = ""
        self.description = ""

        if network_file:
            self.load_from_file(network_file)

    def load_from_file(self, filepath: str):
        """
        Carga la red desde un archivo JSON.

        Args:
            filepath: Ruta al archivo JSON con la definición de la red

        Raises:
            FileNotFoundError: Si el archivo no existe
            json.JSONDecodeError: Si el archivo no es JSON válido
            KeyError: Si falta un campo obligatorio
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"No se encontró el archivo: {filepath}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        self.network_name = data.get('network_name', '')
        self.description = data.get('description', '')

        for lane_data in data.get('lanes', []):
            self.add_lane(
                index=lane_data['id'],
                length_m=lane_data['length_m'],
                lane_type=lane_data.get('lane_type', Lane.DRIVING),
                two_way=lane_data.get('two_way', False),
                src_intersection=lane_data.get('src'),
                dst_intersection=lane_data.get('dst'),
                name=lane_data.get('name', '')
            )

        for turn_data in data.get('turns', []):
            self.add_turn(
                index=turn_data['id'],
                from_lane=turn_data['from_lane'],
                to_lane=turn_data['to_lane'],
                length_m=turn_data['length_m'],
                intersection_id=turn_data.get('intersection_id'),
                movement=turn_data.get('movement', '')
            )

        for signal_data in data.get('signals', []):
            self.add_signal(signal_from_dict(signal_data))

        logger.info("Red cargada: %s (%d carriles, %d giros, %d semáforos)",
                    self.network_name, len(self.lanes), len(self.turns),
                    len(self.signals))

    def add_lane(self, index: int, length_m: float, lane_type: str = Lane.DRIVING,
                 two_way: bool = False, src_intersection: Optional[int] = None,
                 dst_intersection: Optional[int] = None, name: str = "") -> Lane:
        """Agrega un carril a la red."""
        if index in self.lanes:
            raise ValueError(f"Carril duplicado: {index}")

        lane = Lane(index, length_m, lane_type, two_way,
                    src_intersection, dst_intersection, name)
        self.lanes[index] = lane
        self.graph.add_node(lane.id, length=lane.length_m, obj=lane)
        return lane

    def add_turn(self, index: int, from_lane: int, to_lane: int, length_m: float,
                 intersection_id: Optional[int] = None, movement: str = "") -> Turn:
        """
        Agrega un giro entre dos carriles existentes.

        Raises:
            KeyError: Si alguno de los carriles no existe
        """
        if index in self.turns:
            raise ValueError(f"Giro duplicado: {index}")
        if from_lane not in self.lanes or to_lane not in self.lanes:
            raise KeyError(f"Giro {index} conecta carriles inexistentes: "
                           f"{from_lane} → {to_lane}")

        turn = Turn(index, from_lane, to_lane, length_m, intersection_id, movement)
        self.turns[index] = turn
        self.graph.add_node(turn.id, length=turn.length_m, obj=turn)

        # Peso = longitud, para rutas más cortas
        self.graph.add_edge(turn.from_lane, turn.id, weight=self.lanes[from_lane].length_m)
        self.graph.add_edge(turn.id, turn.to_lane, weight=turn.length_m)
        return turn

    def add_signal(self, signal: TrafficSignal):
        """Asocia un semáforo a una intersección."""
        self.signals[signal.intersection_id] = signal

    def set_permission_oracle(self, oracle: Optional[Callable[[Turn, float], bool]]):
        """
        Delega los permisos de giro en un colaborador externo.

        El oráculo recibe (giro, tiempo) y retorna True si el movimiento
        está habilitado. Con None se vuelve a consultar a los semáforos.
        """
        self._permission_oracle = oracle

    def contains(self, traversable: TraversableId) -> bool:
        return traversable in self.graph

    def get_lane(self, index: int) -> Optional[Lane]:
        """Retorna el carril con el índice dado."""
        return self.lanes.get(index)

    def get_turn(self, index: int) -> Optional[Turn]:
        """Retorna el giro con el índice dado."""
        return self.turns.get(index)

    def get(self, traversable: TraversableId):
        """
        Retorna el Lane o Turn correspondiente a un identificador.

        Raises:
            KeyError: Si el tramo no pertenece a la red
        """
        if traversable not in self.graph:
            raise KeyError(f"Tramo desconocido: {traversable}")
        return self.graph.nodes[traversable]['obj']

    def length(self, traversable: TraversableId) -> float:
        """Longitud del tramo en metros."""
        return self.get(traversable).length_m

    def connections(self, traversable: TraversableId) -> List[TraversableId]:
        """Tramos a los que se puede pasar al terminar el actual, en orden fijo."""
        return sorted(self.graph.successors(traversable))

    def is_sidewalk(self, traversable: TraversableId) -> bool:
        """True si el tramo es un carril de vereda."""
        return traversable.is_lane and self.lanes[traversable.index].is_sidewalk

    def turn_permission(self, turn: TraversableId, time: float) -> bool:
        """
        Indica si el movimiento del giro está habilitado en el tiempo dado.

        Los carriles siempre están habilitados. Un giro en una intersección
        sin semáforo está habilitado salvo que el oráculo externo diga otra cosa.
        """
        if not turn.is_turn:
            return True

        turn_obj = self.turns[turn.index]
        if self._permission_oracle is not None:
            return bool(self._permission_oracle(turn_obj, time))

        signal = self.signals.get(turn_obj.intersection_id)
        if signal is None:
            return True
        return signal.can_pass(turn_obj.movement, time)

    def all_traversables(self) -> List[TraversableId]:
        """Todos los tramos de la red en el orden fijo de recorrido."""
        return sorted(self.graph.nodes())

    def get_shortest_route(self, from_lane: int, to_lane: int) -> Optional[List[TraversableId]]:
        """
        Calcula la ruta más corta (en metros) entre dos carriles.

        Usa el algoritmo de Dijkstra. Es una ayuda para el colaborador
        de ruteo; el núcleo no planifica rutas.

        Returns:
            Lista de tramos (carriles y giros alternados), o None si no hay ruta
        """
        try:
            return nx.shortest_path(self.graph, lane_id(from_lane), lane_id(to_lane),
                                    weight='weight')
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None

    def validate_route(self, route: List[TraversableId]):
        """
        Verifica que una ruta sea una secuencia conectada de tramos.

        Raises:
            ValueError: Si la ruta está vacía o tiene saltos
            KeyError: Si contiene tramos desconocidos
        """
        if not route:
            raise ValueError("Ruta vacía")

        for traversable in route:
            self.get(traversable)

        for current, following in zip(route, route[1:]):
            if not self.graph.has_edge(current, following):
                raise ValueError(f"Ruta desconectada: {current} → {following}")

    def get_path_length(self, route: List[TraversableId]) -> float:
        """Longitud total de una ruta en metros."""
        return sum(self.length(t) for t in route)

    def get_network_stats(self) -> Dict:
        """
        Calcula estadísticas de la red.

        Returns:
            dict: Diccionario con estadísticas de la red
        """
        total_lane_length = sum(lane.length_m for lane in self.lanes.values())
        sidewalks = [lane for lane in self.lanes.values() if lane.is_sidewalk]

        return {
            'num_lanes': len(self.lanes),
            'num_sidewalks': len(sidewalks),
            'num_turns': len(self.turns),
            'num_signals': len(self.signals),
            'total_lane_length_km': total_lane_length / 1000,
            'is_connected': (nx.is_weakly_connected(self.graph)
                             if self.graph.number_of_nodes() else False),
            'network_name': self.network_name
        }

    def __str__(self) -> str:
        return f"TraversableGraph('{self.network_name}', {len(self.lanes)} lanes)"

    def __repr__(self) -> str:
        return (f"TraversableGraph(name='{self.network_name}', "
                f"lanes={len(self.lanes)}, turns={len(self.turns)}, "
                f"signals={len(self.signals)})")

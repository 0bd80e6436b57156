"""
Sistema de métricas y análisis de resultados.

Este módulo proporciona funciones para calcular y analizar métricas
de movilidad a partir de los agentes terminados y del historial de
ocupación que registra el planificador.
"""

from typing import List, Dict
import numpy as np
import pandas as pd


class MetricsCalculator:
    """
    Calculadora de métricas de evaluación para simulaciones de movilidad.

    Proporciona métodos estáticos para calcular diversas métricas
    de rendimiento.
    """

    @staticmethod
    def average_travel_time(agents: List) -> float:
        """
        Calcula el tiempo de viaje promedio por agente.

        Args:
            agents: Lista de agentes que completaron su ruta

        Returns:
            float: Tiempo de viaje promedio en segundos
        """
        if not agents:
            return 0.0

        times = [a.finish_time - a.spawn_time for a in agents]
        return float(np.mean(times))

    @staticmethod
    def median_travel_time(agents: List) -> float:
        """
        Calcula el tiempo de viaje mediano.

        Args:
            agents: Lista de agentes que completaron su ruta

        Returns:
            float: Tiempo de viaje mediano en segundos
        """
        if not agents:
            return 0.0

        times = [a.finish_time - a.spawn_time for a in agents]
        return float(np.median(times))

    @staticmethod
    def percentile_travel_time(agents: List, percentile: float = 95) -> float:
        """
        Calcula un percentil del tiempo de viaje.

        Args:
            agents: Lista de agentes que completaron su ruta
            percentile: Percentil a calcular (0-100)

        Returns:
            float: Tiempo de viaje en el percentil dado
        """
        if not agents:
            return 0.0

        times = [a.finish_time - a.spawn_time for a in agents]
        return float(np.percentile(times, percentile))

    @staticmethod
    def average_waiting_time(agents: List) -> float:
        """
        Calcula el tiempo promedio que los agentes pasaron detenidos.

        Args:
            agents: Lista de agentes

        Returns:
            float: Tiempo detenido promedio en segundos
        """
        if not agents:
            return 0.0

        return float(np.mean([a.total_waiting_time for a in agents]))

    @staticmethod
    def average_stops(agents: List) -> float:
        """
        Calcula el número promedio de paradas por agente.

        Args:
            agents: Lista de agentes

        Returns:
            float: Número promedio de paradas
        """
        if not agents:
            return 0.0

        return float(np.mean([a.num_stops for a in agents]))

    @staticmethod
    def average_speed(agents: List) -> float:
        """
        Calcula la velocidad promedio de los agentes.

        Args:
            agents: Lista de agentes que completaron su ruta

        Returns:
            float: Velocidad promedio en km/h
        """
        if not agents:
            return 0.0

        return float(np.mean([a.get_average_speed_kmh() for a in agents]))

    @staticmethod
    def throughput(agents: List, simulation_time: float) -> float:
        """
        Calcula el throughput (agentes que completan su ruta por hora).

        Args:
            agents: Lista de agentes que completaron su ruta
            simulation_time: Tiempo total de simulación en segundos

        Returns:
            float: Agentes por hora
        """
        if simulation_time <= 0:
            return 0.0

        return (len(agents) / simulation_time) * 3600

    @staticmethod
    def average_occupancy(occupancy_history: List[Dict]) -> float:
        """
        Calcula la ocupación promedio de los tramos ocupados.

        Args:
            occupancy_history: Historial registrado por el planificador

        Returns:
            float: Agentes promedio por tramo no vacío
        """
        counts = [count for snapshot in occupancy_history
                  for count in snapshot['occupancy'].values()]
        return float(np.mean(counts)) if counts else 0.0

    @staticmethod
    def max_occupancy(occupancy_history: List[Dict]) -> int:
        """
        Encuentra la ocupación máxima observada en un tramo.

        Args:
            occupancy_history: Historial registrado por el planificador

        Returns:
            int: Máxima cantidad de agentes en un mismo tramo
        """
        counts = [count for snapshot in occupancy_history
                  for count in snapshot['occupancy'].values()]
        return max(counts) if counts else 0

    @staticmethod
    def occupancy_dataframe(occupancy_history: List[Dict]) -> pd.DataFrame:
        """
        Convierte el historial de ocupación a formato largo.

        Returns:
            pd.DataFrame: Columnas time, traversable, count
        """
        rows = [{'time': snapshot['time'], 'traversable': name, 'count': count}
                for snapshot in occupancy_history
                for name, count in snapshot['occupancy'].items()]
        return pd.DataFrame(rows, columns=['time', 'traversable', 'count'])

    @staticmethod
    def agents_dataframe(agents: List) -> pd.DataFrame:
        """Una fila por agente con sus estadísticas de viaje."""
        return pd.DataFrame([a.get_statistics() for a in agents])

    @staticmethod
    def create_summary_dataframe(results: Dict[str, Dict]) -> pd.DataFrame:
        """
        Crea un DataFrame con resumen comparativo de corridas.

        Args:
            results: Dict {nombre_corrida: metrics_dict}

        Returns:
            pd.DataFrame: DataFrame con métricas comparadas
        """
        data = []

        for run_name, metrics in results.items():
            data.append({
                'Run': run_name,
                'Avg Travel (s)': metrics.get('avg_travel_time', 0),
                'Avg Waiting (s)': metrics.get('avg_waiting_time', 0),
                'Avg Occupancy': metrics.get('avg_occupancy', 0),
                'Max Occupancy': metrics.get('max_occupancy', 0),
                'Throughput (ag/h)': metrics.get('throughput_per_hour', 0),
                'Avg Stops': metrics.get('avg_stops', 0),
                'Proximity Events': metrics.get('proximity_events', 0),
                'Computation Time (s)': metrics.get('computation_time', 0),
                'Finished Agents': metrics.get('agents_finished', 0)
            })

        df = pd.DataFrame(data)

        # Menor tiempo de viaje primero
        if not df.empty:
            df = df.sort_values('Avg Travel (s)')

        return df

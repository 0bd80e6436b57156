"""
Script de ejemplo: simulación completa sobre el cruce de demostración.

Este script muestra cómo conectar el planificador SimQueue con el
generador de agentes, el rastreador de contactos en veredas, el registro
de exposición y el mapa de calor de ocupación.
"""

import sys
from pathlib import Path

# Agregar src al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.simqueue import TraversableGraph, SimQueueScheduler, EventBus, AgentGenerator, SpawnScenario
from src.pandemic import ContactTracker, ExposureLog
from src.utils.config import DEMO_NETWORK_FILE, DEMO_SCENARIO_FILE, setup_logging
from src.utils.heatmap import OccupancyHeatmap
from src.utils.metrics import MetricsCalculator


def build_simulation(seed: int = None):
    """
    Arma la simulación completa.

    Args:
        seed: Semilla opcional (por defecto la del escenario)

    Returns:
        tuple: (scheduler, tracker, exposure, heatmap)
    """
    graph = TraversableGraph(str(DEMO_NETWORK_FILE))
    scenario = SpawnScenario(str(DEMO_SCENARIO_FILE))

    generator = AgentGenerator(graph, scenario)
    if seed is not None:
        generator.set_random_seed(seed)

    bus = EventBus()
    scheduler = SimQueueScheduler(graph, event_bus=bus, generator=generator)

    tracker = ContactTracker(graph)
    tracker.attach(bus)
    exposure = ExposureLog()
    tracker.add_listener(exposure)

    heatmap = OccupancyHeatmap(bus)

    return scheduler, tracker, exposure, heatmap


def run_demo(duration: float = 600):
    """Ejecuta la simulación de demostración e imprime un resumen."""
    print("\n" + "="*70)
    print("SIMULACIÓN - Cruce de demostración")
    print("="*70)

    scheduler, tracker, exposure, heatmap = build_simulation()
    print(f"\nRed: {scheduler.graph}")
    print(f"Generador: {scheduler.generator.scenario.name}")

    metrics = scheduler.run(duration=duration, verbose=True)
    metrics['proximity_events'] = len(exposure)

    print("\n" + "="*70)
    print("CONTACTOS EN VEREDAS")
    print("="*70)
    for key, value in exposure.summary().items():
        if isinstance(value, float):
            print(f"  {key:20s}: {value:.2f}")
        else:
            print(f"  {key:20s}: {value}")

    print("\n" + "="*70)
    print("OCUPACIÓN POR TRAMO")
    print("="*70)
    print(heatmap.to_dataframe().to_string(index=False))

    return metrics


def compare_seeds(seeds=(1, 2, 3), duration: float = 300):
    """Compara corridas con distintas semillas."""
    print("\n" + "="*70)
    print("COMPARACIÓN DE SEMILLAS")
    print("="*70)

    results = {}
    for seed in seeds:
        scheduler, _, exposure, _ = build_simulation(seed)
        metrics = scheduler.run(duration=duration, verbose=False)
        metrics['proximity_events'] = len(exposure)
        results[f"seed={seed}"] = metrics

    df = MetricsCalculator.create_summary_dataframe(results)
    print(df.to_string(index=False))


def main():
    """Función principal del ejemplo."""
    setup_logging("WARNING")

    print("="*70)
    print("EJEMPLO COMPLETO DE SIMULACIÓN SIMQUEUE")
    print("="*70)

    run_demo()
    compare_seeds()

    print("\n" + "="*70)
    print("EJEMPLO COMPLETADO")
    print("="*70)


if __name__ == "__main__":
    main()

"""
Errores del núcleo SimQueue.

Los permisos denegados y las rutas agotadas NO son errores: se codifican
en el estado del agente. Aquí solo viven las fallas que detienen la
simulación.
"""


class SimQueueError(Exception):
    """Error base del núcleo de movimiento."""


class ConsistencyFault(SimQueueError):
    """
    Inconsistencia entre colas de ocupación y estado de los agentes.

    Solo puede surgir de un defecto de contabilidad. Es fatal: la
    simulación queda corrupta y no debe continuar.
    """


class SimulationCorrupted(SimQueueError):
    """Se intentó operar sobre un planificador que ya sufrió una falla."""


class ReentrantMutationError(SimQueueError):
    """Un suscriptor intentó mutar el planificador durante el despacho de eventos."""

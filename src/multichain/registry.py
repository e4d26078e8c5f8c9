"""
Transition Strategy Registration System

This module provides a registry of named transition strategies so a sampler
can be configured with a string. The built-in strategies are registered on
import; user code can add its own via register_transition().

Example usage:
    from multichain import register_transition, MCMCSampler

    class MyStrategy(TransitionStrategy):
        def advance(self, chain_index, state):
            ...

    register_transition('mine', MyStrategy)
    sampler = MCMCSampler(priors, log_likelihood, 'mine')
"""

from .transitions import (
    AdaptiveMetropolis,
    DifferentialEvolutionMCMC,
    RandomWalkMetropolis,
    TransitionStrategy,
)

_BUILTINS = {
    'rwmh': RandomWalkMetropolis,
    'arwmh': AdaptiveMetropolis,
    'demcz': DifferentialEvolutionMCMC,
}

_REGISTRY = dict(_BUILTINS)


def register_transition(name, factory):
    """
    Register a transition strategy under a name.

    Args:
        name: Unique identifier string (case-insensitive)
        factory: Callable returning a TransitionStrategy; keyword options
            given to get_transition() are passed through. A
            TransitionStrategy subclass is the usual choice.

    Raises:
        ValueError: If the name is already registered or factory is not callable
    """
    key = name.lower()
    if key in _REGISTRY:
        raise ValueError(f"Transition strategy '{name}' is already registered")
    if not callable(factory):
        raise ValueError(f"Factory for transition strategy '{name}' must be callable")
    _REGISTRY[key] = factory


def get_transition(name, **options) -> TransitionStrategy:
    """
    Build a registered transition strategy.

    Args:
        name: The strategy identifier
        **options: Keyword arguments for the strategy's constructor

    Returns:
        A new TransitionStrategy instance

    Raises:
        KeyError: If the strategy is not registered
    """
    key = name.lower()
    if key not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown transition strategy '{name}'. Available: {available}")
    return _REGISTRY[key](**options)


def list_transitions():
    """
    List all registered strategy names.

    Returns:
        List of registered name strings
    """
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Remove user registrations, keeping the built-in strategies. Primarily for testing.
    """
    _REGISTRY.clear()
    _REGISTRY.update(_BUILTINS)

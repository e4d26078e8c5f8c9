"""
Chain Transition Strategies

To add a new strategy:
1. Subclass TransitionStrategy in a new file in transitions/
2. Implement advance(chain_index, state), plus validate()/bind() if needed
3. Register it by name with multichain.registry.register_transition
4. Export from this __init__.py

Every strategy only touches the random stream and counters of the chain
it is advancing, so the scheduler can fan chains out across threads.
"""

from .base import ChainContext, FunctionTransition, TransitionStrategy
from .rand_walk import RandomWalkMetropolis
from .adaptive import AdaptiveMetropolis, RunningCovariance
from .demcz import DifferentialEvolutionMCMC

__all__ = [
    'ChainContext',
    'FunctionTransition',
    'TransitionStrategy',
    'RandomWalkMetropolis',
    'AdaptiveMetropolis',
    'RunningCovariance',
    'DifferentialEvolutionMCMC',
]

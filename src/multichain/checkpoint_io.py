"""
Checkpoint I/O utilities for saving and loading MCMC run state.

This module provides functions for:
- Saving a sampler's run state and random streams to disk (.npz)
- Loading checkpoints back into plain dicts of arrays
- Rebuilding a RunState and the per-chain Generators from a checkpoint

Restore into a sampler with MCMCSampler.restore(load_checkpoint(path)).
"""

from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .error_handling import ResumeError
from .mcmc.types import RunConfiguration, RunState, TrialPoint

import logging
logger = logging.getLogger('multichain')


def _split(points, number_of_parameters: int):
    """Values (n, d) and fitness (n,) arrays for a list of TrialPoints."""
    values = np.empty((len(points), number_of_parameters))
    fitness = np.empty(len(points))
    for k, point in enumerate(points):
        values[k] = point.values
        fitness[k] = point.fitness
    return values, fitness


def _join(values, fitness) -> List[TrialPoint]:
    return [TrialPoint(v, f) for v, f in zip(values, fitness)]


def save_checkpoint(filepath, sampler, metadata: Optional[Dict[str, Any]] = None) -> None:
    """
    Save a sampler's run state to disk for resuming later.

    Args:
        filepath: Path to save checkpoint (.npz file)
        sampler: MCMCSampler whose run state and random streams are saved
        metadata: Optional dict of additional metadata

    Saves:
        - Chain traces, output buffers and current chain states
        - Population matrix, acceptance and sample counts
        - Mean log-likelihood trace, MAP and mode
        - Bit-generator state of each chain's random stream
        - Run configuration, for validation on restore
    """
    state = sampler.run_state
    d = sampler.number_of_parameters
    n_chains = state.number_of_chains

    n_recorded = min((len(trace) for trace in state.chain_traces), default=0)
    trace_values = np.empty((n_chains, n_recorded, d))
    trace_fitness = np.empty((n_chains, n_recorded))
    for j, trace in enumerate(state.chain_traces):
        trace_values[j], trace_fitness[j] = _split(trace[:n_recorded], d)

    output = [point for buffer in state.output_buffers for point in buffer]
    output_chain = np.array([j for j, buffer in enumerate(state.output_buffers) for _ in buffer], dtype=np.int64)
    output_values, output_fitness = _split(output, d)
    chain_values, chain_fitness = _split(state.chain_states, d)
    population_values, population_fitness = _split(state.population_matrix, d)

    config = asdict(sampler.config)
    config['initialization'] = int(config['initialization'])

    checkpoint = {
        'num_params': d,
        'number_of_chains': n_chains,
        'trace_values': trace_values,
        'trace_fitness': trace_fitness,
        'output_values': output_values,
        'output_fitness': output_fitness,
        'output_chain': output_chain,
        'chain_values': chain_values,
        'chain_fitness': chain_fitness,
        'population_values': population_values,
        'population_fitness': population_fitness,
        'accept_count': state.accept_count,
        'sample_count': state.sample_count,
        'mean_log_likelihood': np.asarray(state.mean_log_likelihood, dtype=np.float64),
        'map_values': state.map.values,
        'map_fitness': state.map.fitness,
        'output_count': state.output_count,
        'simulations': state.simulations,
        'rng_states': np.array([rng.bit_generator.state for rng in sampler.rngs], dtype=object),
        'config': config,
    }

    if state.mode is not None:
        checkpoint['mode_values'] = state.mode.values
        checkpoint['mode_fitness'] = state.mode.fitness

    if metadata:
        checkpoint['metadata'] = metadata

    filepath = Path(filepath)
    np.savez_compressed(filepath, **checkpoint)
    logger.info(f"Checkpoint saved to {filepath}")


def load_checkpoint(filepath) -> Dict[str, Any]:
    """
    Load an MCMC checkpoint from disk.

    Args:
        filepath: Path to checkpoint file (.npz)

    Returns:
        Dict with the arrays and scalars written by save_checkpoint()
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Checkpoint not found: {filepath}")

    scalars = {
        'num_params': int,
        'number_of_chains': int,
        'map_fitness': float,
        'output_count': int,
        'simulations': int,
        'mode_fitness': float,
    }

    # Copy arrays so nothing refers to the open file afterwards
    with np.load(filepath, allow_pickle=True) as data:
        checkpoint = {}
        for key in data.files:
            if key in scalars:
                checkpoint[key] = scalars[key](data[key])
            elif key in ('config', 'metadata'):
                checkpoint[key] = data[key].item()
            elif key == 'rng_states':
                checkpoint[key] = list(data[key])
            else:
                checkpoint[key] = data[key].copy()

    return checkpoint


def restore_run_state(checkpoint: Dict[str, Any], config: RunConfiguration,
                      number_of_parameters: int) -> RunState:
    """
    Rebuild a RunState from a checkpoint.

    Args:
        checkpoint: Dict from load_checkpoint()
        config: Configuration of the sampler being restored into
        number_of_parameters: Number of priors of that sampler

    Returns:
        RunState

    Raises:
        ResumeError: If the parameter or chain count does not match
    """
    if checkpoint['num_params'] != number_of_parameters:
        raise ResumeError(
            f"Checkpoint parameter count mismatch: checkpoint has {checkpoint['num_params']} "
            f"parameters, but the sampler has {number_of_parameters}."
        )
    if checkpoint['number_of_chains'] != config.number_of_chains:
        raise ResumeError(
            f"Checkpoint chain count mismatch: checkpoint has {checkpoint['number_of_chains']} "
            f"chains, but the configuration specifies {config.number_of_chains}."
        )

    state = RunState.empty(config.number_of_chains)
    state.chain_traces = [_join(v, f) for v, f in zip(checkpoint['trace_values'], checkpoint['trace_fitness'])]
    for chain, point in zip(checkpoint['output_chain'],
                            _join(checkpoint['output_values'], checkpoint['output_fitness'])):
        state.output_buffers[int(chain)].append(point)
    state.chain_states = _join(checkpoint['chain_values'], checkpoint['chain_fitness'])
    state.population_matrix = _join(checkpoint['population_values'], checkpoint['population_fitness'])
    state.accept_count = np.asarray(checkpoint['accept_count'], dtype=np.int64).copy()
    state.sample_count = np.asarray(checkpoint['sample_count'], dtype=np.int64).copy()
    state.mean_log_likelihood = [float(x) for x in checkpoint['mean_log_likelihood']]
    state.map = TrialPoint(checkpoint['map_values'], checkpoint['map_fitness'])
    state.output_count = checkpoint['output_count']
    state.simulations = checkpoint['simulations']
    if 'mode_values' in checkpoint:
        state.mode = TrialPoint(checkpoint['mode_values'], checkpoint['mode_fitness'])
    return state


def restore_rngs(checkpoint: Dict[str, Any]) -> List[np.random.Generator]:
    """Rebuild each chain's Generator from its saved bit-generator state."""
    rngs = []
    for saved in checkpoint['rng_states']:
        bit_generator = getattr(np.random, saved['bit_generator'])()
        bit_generator.state = saved
        rngs.append(np.random.Generator(bit_generator))
    return rngs

"""
MCMC Configuration.

This module handles building run configurations:
- clean_config: Fill defaults into a plain config dict
- configure_run: Build a RunConfiguration from a config dict
- gen_chain_rngs: Spawn one independent random stream per chain

All config keys use lowercase with underscores (e.g., 'number_of_chains', 'prng_seed').
"""

from dataclasses import fields
from typing import Any, Dict, List

import numpy as np

from .types import InitializationMethod, RunConfiguration

import logging
logger = logging.getLogger('multichain')


_DEFAULTS = {f.name: f.default for f in fields(RunConfiguration)}


def clean_config(run_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Cleans a config dict and sets defaults.

    Keys are lowercased; unknown keys are dropped with a warning.
    """
    cleaned = {}
    for key, value in run_config.items():
        key = key.lower()
        if key not in _DEFAULTS:
            logger.warning(f"Ignoring unknown config key '{key}'")
            continue
        cleaned[key] = value

    for key, default in _DEFAULTS.items():
        cleaned.setdefault(key, default)

    return cleaned


def _parse_initialization(value) -> InitializationMethod:
    if isinstance(value, InitializationMethod):
        return value
    if isinstance(value, str):
        key = value.strip().upper().replace('-', '_').replace(' ', '_')
        if key == 'RANDOM':
            key = 'RANDOMIZE'
        try:
            return InitializationMethod[key]
        except KeyError:
            valid = [m.name.lower() for m in InitializationMethod]
            raise ValueError(f"Unknown initialization '{value}'. Valid: {valid}") from None
    return InitializationMethod(int(value))


def configure_run(run_config: Dict[str, Any]) -> RunConfiguration:
    """
    Build a RunConfiguration from a config dict.

    Args:
        run_config: Dict with any of the RunConfiguration field names.
            'initialization' may be an InitializationMethod, its name
            ('randomize', 'map', 'user_defined') or its integer value.

    Returns:
        RunConfiguration (not yet validated; validation happens when a
        sampler is built or run)
    """
    cleaned = clean_config(dict(run_config))
    cleaned['initialization'] = _parse_initialization(cleaned['initialization'])
    return RunConfiguration(**cleaned)


def gen_chain_rngs(prng_seed: int, number_of_chains: int) -> List[np.random.Generator]:
    """Spawn one independent Generator per chain from a master seed."""
    children = np.random.SeedSequence(prng_seed).spawn(number_of_chains)
    return [np.random.default_rng(child) for child in children]

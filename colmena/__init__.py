"""Asyncio building blocks for NixOS deployments: goals, limits, options,
Nix expressions, job monitoring, flakes and nix-eval-jobs evaluation."""

__version__ = "0.5.0"
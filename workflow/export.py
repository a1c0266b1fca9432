from __future__ import annotations
import os

from system.atoms import Trajectory, element_symbol


def save_xyz(trajectory: Trajectory, filename: str | os.PathLike = "output.xyz", *, scale: float = 10.0) -> None:
    """
    Save a trajectory as a multi-frame XYZ file for external viewers.

    Parameters
    ----------
    trajectory : Trajectory
        Frames to write, in order.
    filename : str or PathLike
        Output path; overwritten.
    scale : float
        Factor applied to positions. The default converts nm to the Angstrom XYZ viewers expect.
    """
    symbols = [element_symbol(z) for z in trajectory.atomic_numbers.tolist()]
    N = len(symbols)

    with open(filename, "w") as f:
        for step, frame in enumerate(trajectory):
            f.write(f"{N}\n")
            f.write(f"Frame {step}\n")
            for symbol, (x, y, z) in zip(symbols, (frame.positions * scale).tolist()):
                f.write(f"{symbol} {x:.5f} {y:.5f} {z:.5f}\n")

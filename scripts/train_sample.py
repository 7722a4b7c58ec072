#!/usr/bin/env python3
"""
Train a small network on a single sample from the command line.

Builds a network, then repeatedly runs backprop and gradient descent on one
(input, target) pair, printing the loss as it goes.

Usage:
    python scripts/train_sample.py --sizes 2,3,1 --activation Sigmoid \\
        --inputs 1,0.5 --targets 0.25 --steps 500 --learning-rate 0.5
"""

import os
import sys
import argparse
from typing import List

import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from simplenn.activations import available_activations
from simplenn.network import NetworkError
from simplenn.training import TrainingSession


def parse_numbers(text: str, cast=float) -> List:
    """Parse a comma-separated list of numbers, skipping blank entries."""
    return [cast(part.strip()) for part in text.split(',') if part.strip()]


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('--sizes', default='2,3,1',
                        help='comma-separated layer widths, input first')
    parser.add_argument('--activation', default='Sigmoid',
                        help=f"one of {', '.join(available_activations())}")
    parser.add_argument('--inputs', default='1,1')
    parser.add_argument('--targets', default='0')
    parser.add_argument('--learning-rate', type=float, default=0.1)
    parser.add_argument('--steps', type=int, default=100)
    parser.add_argument('--report-every', type=int, default=10)
    parser.add_argument('--pin-bias-input', action='store_true',
                        help='force input 0 to 1.0')
    parser.add_argument('--seed', type=int, default=None)
    args = parser.parse_args()

    rng = np.random.default_rng(args.seed)

    try:
        session = TrainingSession(
            parse_numbers(args.sizes, int),
            args.activation,
            learning_rate=args.learning_rate,
            inputs=parse_numbers(args.inputs),
            targets=parse_numbers(args.targets),
            pin_bias_input=args.pin_bias_input,
            rng=rng
        )
    except (NetworkError, ValueError) as e:
        print(f"❌ Could not build network: {e}")
        return 1

    net = session.network
    print(f"🧠 Network {list(net.sizes)} ({net.activation.name})")
    print(f"   - Input:  {session.training_input()}")
    print(f"   - Target: {session.targets}")

    done = 0
    while done < args.steps:
        chunk = min(args.report_every, args.steps - done)
        try:
            loss = session.step(chunk)
        except ValueError as e:
            print(f"❌ Training failed: {e}")
            return 1
        done += chunk
        print(f"   step {session.steps:>6}  loss {loss:.6f}")

    output = net.feedforward(session.training_input())
    print(f"✅ Final output: {output.tolist()}")
    return 0


if __name__ == '__main__':
    sys.exit(main())

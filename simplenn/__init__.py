"""
simplenn package
~~~~~~~~~~~~~~~~

Minimal feedforward neural network engine.
Contains the activation registry, the network engine (forward pass,
backpropagation and gradient descent), a single-sample training session,
and an API server for driving training from a browser.
"""

__version__ = "1.0.0"

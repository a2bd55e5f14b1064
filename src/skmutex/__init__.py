"""
skmutex: Suzuki–Kasami Token Mutual Exclusion Simulator

A step-driven simulator of the Suzuki–Kasami token algorithm for
distributed mutual exclusion among N peer processes.

Core concepts:
- Each process keeps an RN array: the highest request number seen per peer
- A single token carries the LN array (last satisfied) and a wait queue
- Possessing the token is the only way into the critical section
- Messages travel with non-zero, simulated transit time
- Exactly one message is delivered per step, in creation order

The core engine knows nothing about rendering or traces; those layers
subscribe to its events and read its snapshots.
"""

__version__ = "0.1.0"

"""pricestream: live price streaming backend."""

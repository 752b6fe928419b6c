# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Kahla notify server.

Relays HTTP-triggered messages into Kahla conversations, authorized by
per-conversation tokens that the server issues to its friends.
"""

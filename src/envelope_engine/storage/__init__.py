# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from envelope_engine.storage.interface import EnvelopeStorage
from envelope_engine.storage.memory import MemoryStorage

__all__ = ["EnvelopeStorage", "MemoryStorage"]

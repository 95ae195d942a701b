"""
Purpose: KeyValueStorage over Streamlit session state, so a Streamlit UI keeps
chats and GPTs across reruns without touching disk.
"""

from __future__ import annotations
from typing import MutableMapping, Optional

import streamlit as st

PREFIX = "nexus:"


class StreamlitSessionStorage:
    def __init__(self, state: Optional[MutableMapping] = None) -> None:
        self.state = st.session_state if state is None else state

    def get(self, key: str) -> Optional[str]:
        return self.state.get(PREFIX + key)

    def set(self, key: str, value: str) -> None:
        self.state[PREFIX + key] = value

    def delete(self, key: str) -> None:
        if PREFIX + key in self.state:
            del self.state[PREFIX + key]

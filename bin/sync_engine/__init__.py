"""Sync engine: Obsidian vault ↔ Anki 동기화 모듈.

state 모듈은 digest 기반 diff/apply 상태 머신(State, NoteTypeState, NoteState)을,
store 모듈은 실행 간 유지되는 digest 저장/로드를,
synchronizer 모듈은 import / synchronize 두 단계의 전체 흐름을 담당한다.
"""

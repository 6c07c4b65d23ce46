"""Area-of-operations and mission orchestration.

Package layout:
  errors.py      — error taxonomy, SetupReport / SetupSession
  zones.py       — circle, polygon and group-following zones
  catalog.py     — TemplateCatalog and its JSON loaders
  spawner.py     — Spawner (live instances of one template)
  area.py        — AreaOfOperations
  zone_watch.py  — ZoneWatch (arrival / destruction / timeout race)
  mission.py     — Mission goal state machine and MissionRegistry
  air_range.py   — AirRange (on-demand adversaries, leaker sweep)
  commands.py    — named commands for a UI or CLI layer
  scenario.py    — scripted mission runs in simulated time
"""

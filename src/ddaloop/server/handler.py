"""Server handler: wires the DDA loop and dispatches game requests to it."""

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from ddaloop.config.settings import Settings
from ddaloop.engine.analyzer import DDAAnalyzer
from ddaloop.engine.effector import DifficultyEffector
from ddaloop.engine.events import GameEvents
from ddaloop.engine.manager import DDAManager
from ddaloop.engine.metrics import PlayerMetricsCollector
from ddaloop.engine.policy import LLMPolicyEngine
from ddaloop.engine.profile import (
    JUMP_STRENGTH,
    RUN_SPEED,
    DifficultyProfile,
    build_schema,
)
from ddaloop.engine.providers import ProviderClient, create_client
from ddaloop.state.session_log import SessionLog

from .bridge import RemoteCharacter, RemoteTerrain
from .protocol import Notification


def _profile_to_dict(profile: Optional[DifficultyProfile]) -> Optional[dict]:
    return profile.to_dict() if profile is not None else None


class ServerHandler:
    """Owns one instance of every loop component for the game session."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        write_notification: Optional[Callable[[Notification], None]] = None,
        client: Optional[ProviderClient] = None,
    ):
        self.settings = settings or Settings.load()
        self._write_notification = write_notification or (lambda n: None)

        self.template = DifficultyProfile(build_schema(self.settings.variables))
        self.events = GameEvents()

        self.collector = PlayerMetricsCollector()
        self.analyzer = DDAAnalyzer(self.settings.analyzer)
        self.policy = LLMPolicyEngine(
            self.template,
            client=client or create_client(self.settings.llm),
            config=self.settings.policy,
            timeout=self.settings.llm.timeout_seconds,
        )
        self.character = RemoteCharacter(
            self._write_notification,
            run_speed=self.template.value(RUN_SPEED),
            jump_strength=self.template.value(JUMP_STRENGTH),
        )
        self.effector = DifficultyEffector(character=self.character)
        self.manager = DDAManager(
            collector=self.collector,
            analyzer=self.analyzer,
            policy=self.policy,
            effector=self.effector,
            session_log=SessionLog(
                self.settings.session_log_dir, enabled=self.settings.session_logging,
            ),
            config=self.settings.trigger,
        )

        # Collector first: the manager snapshots metrics on death
        self.collector.attach(self.events)
        self.manager.attach(self.events)
        self.manager.difficulty_changed.connect(self._on_difficulty_changed)

    async def dispatch(self, msg: dict) -> dict:
        """Route a request message to the appropriate handler method."""
        method = msg.get("method", "")
        params = msg.get("params") or {}

        handler_map = {
            "scoreChanged": self._score_changed,
            "deathChanged": self._death_changed,
            "coinChanged": self._coin_changed,
            "jump": self._jump,
            "runReset": self._run_reset,
            "tick": self._tick,
            "configureCharacter": self._configure_character,
            "configureTerrain": self._configure_terrain,
            "getMetrics": self._get_metrics,
            "getProfile": self._get_profile,
            "triggerCycle": self._trigger_cycle,
            "resetSession": self._reset_session,
            "setEnabled": self._set_enabled,
            "getStatus": self._get_status,
        }

        handler = handler_map.get(method)
        if handler is None:
            raise ValueError(f"Unknown method: {method}")

        return await handler(params)

    async def aclose(self) -> None:
        await self.manager.wait_idle()
        self.manager.close()
        self.collector.detach()

    def _on_difficulty_changed(self, profile: DifficultyProfile) -> None:
        self._write_notification(Notification("difficultyChanged", {
            "profile": profile.to_dict(),
            "adjustmentCount": self.manager.adjustment_count,
        }))

    # --- Game events ---

    async def _score_changed(self, params: dict) -> dict:
        self.events.score_changed.emit(float(params["distance"]))
        return {"ok": True}

    async def _death_changed(self, params: dict) -> dict:
        self.events.death_changed.emit(bool(params["isDead"]))
        return {
            "deaths": self.manager.total_deaths,
            "cycleStarted": self.manager.cycle_in_progress,
        }

    async def _coin_changed(self, params: dict) -> dict:
        self.events.coin_changed.emit(int(params["value"]))
        return {"ok": True}

    async def _jump(self, params: dict) -> dict:
        self.events.jumped.emit()
        return {"ok": True}

    async def _run_reset(self, params: dict) -> dict:
        self.events.run_reset.emit(int(params.get("coins", 0)))
        return {"ok": True}

    async def _tick(self, params: dict) -> dict:
        self.events.tick.emit(float(params["dt"]))
        return {"ok": True}

    # --- Configuration ---

    async def _configure_character(self, params: dict) -> dict:
        self.character = RemoteCharacter(
            self._write_notification,
            run_speed=float(params.get("runSpeed", self.character.run_speed)),
            jump_strength=float(params.get("jumpStrength", self.character.jump_strength)),
        )
        self.effector.character = self.character
        return {"ok": True}

    async def _configure_terrain(self, params: dict) -> dict:
        terrain = RemoteTerrain.from_params(params.get("blocks", []), self._write_notification)
        # New block objects get a fresh baseline cache
        self.effector = DifficultyEffector(character=self.character, terrain=terrain)
        self.manager.effector = self.effector
        logger.info(
            f"Terrain configured: {len(terrain.start_blocks)} start, "
            f"{len(terrain.middle_blocks)} middle, {len(terrain.end_blocks)} end blocks"
        )
        return {"blocks": len(params.get("blocks", []))}

    async def _set_enabled(self, params: dict) -> dict:
        self.manager.enabled = bool(params["enabled"])
        return {"enabled": self.manager.enabled}

    # --- Queries and control ---

    async def _get_metrics(self, params: dict) -> dict:
        metrics = self.collector.snapshot()
        return {
            "metrics": metrics.to_dict(),
            "symptom": self.analyzer.classify(metrics).label,
        }

    async def _get_profile(self, params: dict) -> dict:
        return {"profile": _profile_to_dict(self.manager.current_profile)}

    async def _trigger_cycle(self, params: dict) -> dict:
        task = None if self.manager.cycle_in_progress else self.manager.start_cycle()
        if task is None:
            return {"started": False, "profile": _profile_to_dict(self.manager.current_profile)}
        profile = await task
        return {"started": True, "profile": _profile_to_dict(profile)}

    async def _reset_session(self, params: dict) -> dict:
        self.manager.reset_session()
        return {"ok": True}

    async def _get_status(self, params: dict) -> dict:
        llm = self.settings.llm
        return {
            "provider": llm.get_provider().value,
            "model": llm.get_model(),
            "keyConfigured": self.policy.client is not None,
            "enabled": self.manager.enabled,
            "deaths": self.manager.total_deaths,
            "adjustments": self.manager.adjustment_count,
            "processing": self.policy.is_processing,
        }

from __future__ import annotations

from dependency_injector import containers, providers  # type: ignore[import-not-found]

from coderoom.event_bus import EventBus
from coderoom.providers import GeminiClient, OpenAIClient
from coderoom.repositories import ConfigRepository, FileRoomBackend, InMemoryRoomBackend
from coderoom.services import (
    AiResponseOrchestrator,
    ChangeFeedSubscriber,
    MembershipRoster,
    MessageStore,
    OptimisticWriteCoordinator,
    ProviderInferenceClient,
    RoomSession,
)
from coderoom.state import RoomState


class RoomClientContainer(containers.DeclarativeContainer):
    config_repository = providers.Singleton(ConfigRepository, base_dir=".")
    client_config = providers.Singleton(
        lambda repository: repository.load_config(), config_repository
    )

    backend = providers.Selector(
        providers.Callable(lambda config: config.backend, client_config),
        memory=providers.Singleton(InMemoryRoomBackend),
        file=providers.Singleton(
            FileRoomBackend,
            data_dir=providers.Callable(lambda config: config.data_dir, client_config),
        ),
    )

    event_bus = providers.Singleton(EventBus, critical_handler_retries=1)
    state = providers.Singleton(RoomState)
    message_store = providers.Singleton(MessageStore, bus=event_bus)
    roster = providers.Singleton(MembershipRoster, bus=event_bus)

    ai_provider_clients = providers.Callable(
        lambda gemini, openai: {"gemini": gemini, "openai": openai},
        gemini=providers.Factory(GeminiClient),
        openai=providers.Factory(OpenAIClient),
    )
    inference_client = providers.Singleton(
        ProviderInferenceClient,
        config_repository=config_repository,
        provider_clients=ai_provider_clients,
    )

    feed_subscriber = providers.Singleton(
        ChangeFeedSubscriber,
        feed=backend,
        state=state,
        store=message_store,
        roster=roster,
    )
    ai_orchestrator = providers.Singleton(
        AiResponseOrchestrator,
        repository=backend,
        inference=inference_client,
        state=state,
        store=message_store,
        bus=event_bus,
    )
    write_coordinator = providers.Singleton(
        OptimisticWriteCoordinator,
        repository=backend,
        state=state,
        store=message_store,
        ai=ai_orchestrator,
        bus=event_bus,
    )
    session = providers.Singleton(
        RoomSession,
        repository=backend,
        state=state,
        store=message_store,
        roster=roster,
        subscriber=feed_subscriber,
        writer=write_coordinator,
        bus=event_bus,
    )

"""Tests for agent routing."""

import pytest

from agents.base.agent_interface import AgentType
from orchestrator.engine.routing import needs_fresh_start, route_user_message
from orchestrator.engine.state_manager import ChatMessage, MessageRole, OrchestratorState


def _message(content: str, role: MessageRole = MessageRole.USER) -> ChatMessage:
    return ChatMessage(session_id="s1", role=role, content=content)


def _state(current_agent=None) -> OrchestratorState:
    return OrchestratorState(current_agent=current_agent)


class TestFreshStart:
    def test_new_session_goes_to_product(self):
        history = [_message("please implement a login page")]
        assert route_user_message(_state(), history) == AgentType.PRODUCT

    def test_system_message_restarts_at_product(self):
        history = [_message("Session restored", MessageRole.SYSTEM)]
        assert needs_fresh_start(_state(AgentType.TEST), history)
        assert route_user_message(_state(AgentType.TEST), history) == AgentType.PRODUCT

    def test_empty_history(self):
        assert route_user_message(_state(), []) == AgentType.PRODUCT


class TestKeywords:
    @pytest.mark.parametrize("content,expected", [
        ("Please write code for the login", AgentType.CODER),
        ("Can you IMPLEMENT the export?", AgentType.CODER),
        ("Pode implementar o cadastro?", AgentType.CODER),
        ("Give me some test cases", AgentType.TEST),
        ("Quero casos de teste", AgentType.TEST),
        ("Any security concerns?", AgentType.SECURITY),
        ("Verifique a vulnerabilidade", AgentType.SECURITY),
        ("Update the requirements", AgentType.PRODUCT),
        ("Add a user story for export", AgentType.PRODUCT),
    ])
    def test_keyword_routes(self, content, expected):
        assert route_user_message(_state(AgentType.SECURITY), [_message(content)]) == expected

    def test_first_matching_rule_wins(self):
        # Coder keywords are checked before security keywords
        history = [_message("implement the security fixes")]
        assert route_user_message(_state(AgentType.PRODUCT), history) == AgentType.CODER

    def test_keyword_overrides_current_agent(self):
        history = [_message("Any security concerns with this code?")]
        assert route_user_message(_state(AgentType.CODER), history) == AgentType.SECURITY

    @pytest.mark.parametrize("content", [
        "Sounds good, please use the latest Node version",
        "Make it the fastest option",
        "Add a contest mode",
        "Handle the protest page too",
        "Store the attestation date",
    ])
    def test_keywords_match_whole_words_only(self, content):
        assert route_user_message(_state(AgentType.CODER), [_message(content)]) == AgentType.CODER

    def test_plural_test_keywords(self):
        assert route_user_message(_state(AgentType.CODER), [_message("Add more tests")]) == AgentType.TEST
        assert route_user_message(_state(AgentType.CODER), [_message("Faltam testes")]) == AgentType.TEST

    def test_only_user_messages_are_scanned(self):
        history = [_message("let me write code", MessageRole.ASSISTANT)]
        assert route_user_message(_state(AgentType.TEST), history) == AgentType.TEST


class TestFallback:
    def test_stays_with_current_agent(self):
        history = [_message("ok"), _message("sounds good, go ahead")]
        assert route_user_message(_state(AgentType.CODER), history) == AgentType.CODER

    def test_routing_does_not_mutate_state(self):
        state = _state(AgentType.TEST)
        route_user_message(state, [_message("write code")])
        assert state.current_agent == AgentType.TEST

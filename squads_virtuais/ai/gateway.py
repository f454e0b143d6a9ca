"""
Squads Virtuais
LLM Gateway.

Provider-agnostic chat router:
    - OpenAI (JSON response format), Anthropic Claude, local stub
    - Provider selected by the AI_PROVIDER setting
    - Token and latency accounting on every call

No retry: a failed call raises and the caller decides what to surface.

Usage:
    from squads_virtuais.ai.gateway import LLMGateway
    gw = LLMGateway()
    result = gw.chat(messages, json_mode=True)
"""

import json
import logging
import time
from abc import ABC, abstractmethod

from flask import current_app

logger = logging.getLogger(__name__)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    default_model = ""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, json_mode, timeout.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    default_model = "gpt-4o-mini"

    def __init__(self, api_key: str = "", timeout: float = 60):
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
                self._client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        params = {
            "model": model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.7),
        }
        if kwargs.get("json_mode"):
            params["response_format"] = {"type": "json_object"}

        response = client.chat.completions.create(**params)
        choice = response.choices[0]
        return {
            "content": choice.message.content,
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": response.model or model,
        }


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    default_model = "claude-3-5-haiku-20241022"

    def __init__(self, api_key: str = "", timeout: float = 60):
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
                self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)
            except ImportError:
                raise RuntimeError("anthropic package not installed. Run: pip install anthropic")
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        client = self._get_client()

        # Separate system message
        system_parts = []
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                chat_messages.append(m)
        if kwargs.get("json_mode"):
            system_parts.append("Responda apenas com um objeto JSON válido, sem texto adicional.")

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.7),
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)

        response = client.messages.create(**params)
        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

class LocalStubProvider(LLMProvider):
    """
    Deterministic structure proposal for development and tests.
    No API key required.
    """

    default_model = "local-stub"

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = json.dumps(self.stub_proposal(), ensure_ascii=False)
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def stub_proposal() -> dict:
        return {
            "proposal": {
                "decision_context": {
                    "why_now": "A taxa de abandono cresceu nos últimos dois trimestres.",
                    "what_is_at_risk": "Receita recorrente e confiança dos clientes.",
                    "decision_horizon": "90 dias",
                },
                "problem_maturity": {
                    "current_stage": "exploracao",
                    "confidence_level": "media",
                },
                "personas": [
                    {
                        "name": "Compradora Recorrente",
                        "type": "cliente",
                        "description": "Cliente que compra mensalmente e valoriza rapidez.",
                        "goals": "Encontrar produtos conhecidos em poucos cliques.",
                        "pain_points": "Busca retorna resultados irrelevantes.",
                    },
                    {
                        "name": "Gerente de Categoria",
                        "type": "stakeholder",
                        "description": "Responsável pelo sortimento e pela vitrine.",
                        "goals": "Aumentar a conversão da categoria.",
                        "pain_points": "Pouca visibilidade sobre buscas sem resultado.",
                    },
                ],
                "governance": {
                    "decision_rules": ["Decisões de escopo exigem evidência de usuários."],
                    "non_negotiables": ["Nenhuma mudança sem métrica de sucesso definida."],
                },
                "squad_structure": {
                    "roles": [
                        {
                            "role": "Product Manager",
                            "description": "Conduz a descoberta e prioriza o problema.",
                            "accountability": "Resultado de negócio da squad.",
                        },
                        {
                            "role": "Pesquisador de UX",
                            "description": "Planeja e conduz entrevistas com usuários.",
                            "accountability": "Qualidade das evidências de usuário.",
                        },
                    ],
                },
                "recommended_flow": {
                    "phases": [
                        {"name": "Descoberta", "objective": "Entender o comportamento de busca."},
                        {"name": "Definição", "objective": "Priorizar hipóteses de solução."},
                        {"name": "Validação", "objective": "Testar protótipos com usuários."},
                    ],
                },
                "critical_unknowns": [
                    {
                        "question": "Quais termos de busca mais falham hoje?",
                        "why_it_matters": "Direciona o escopo da primeira entrega.",
                        "how_to_reduce": "Analisar os logs de busca dos últimos 30 dias.",
                    },
                    {
                        "question": "O problema é de catálogo ou de ranking?",
                        "why_it_matters": "Muda a composição técnica da squad.",
                        "how_to_reduce": "Auditar uma amostra de buscas sem resultado.",
                    },
                ],
                "execution_model": {
                    "approach": "Ciclos semanais de descoberta contínua.",
                    "constraints": ["Equipe de engenharia compartilhada."],
                    "responsibilities": ["PM consolida os aprendizados a cada ciclo."],
                },
                "validation_strategy": {
                    "signals_to_stop": ["Nenhuma melhoria de conversão após dois ciclos."],
                    "signals_of_confidence": ["Queda de 20% nas buscas sem resultado."],
                },
                "readiness_assessment": {
                    "is_ready_to_build_product": False,
                    "justification": "Ainda faltam evidências sobre a causa raiz.",
                },
                "uncertainties": [
                    "Volume real de buscas sem resultado.",
                    "Capacidade da equipe de dados.",
                ],
            },
        }


# ── Gateway ──────────────────────────────────────────────────────────────────

PROVIDERS = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "local": LocalStubProvider,
}


class LLMGateway:
    """
    Central gateway for all LLM calls.

    Usage:
        gw = LLMGateway()
        result = gw.chat(
            messages=[{"role": "user", "content": "..."}],
            json_mode=True,
        )
    """

    def __init__(self, provider_name: str | None = None):
        config = current_app.config
        self.provider_name = (provider_name or config.get("AI_PROVIDER") or "local").lower()
        if self.provider_name not in PROVIDERS:
            raise RuntimeError(f"Unknown AI provider: {self.provider_name}")

        if self.provider_name == "openai":
            self._provider = OpenAIProvider(config.get("OPENAI_API_KEY", ""), config.get("AI_TIMEOUT", 60))
        elif self.provider_name == "anthropic":
            self._provider = AnthropicProvider(config.get("ANTHROPIC_API_KEY", ""), config.get("AI_TIMEOUT", 60))
        else:
            self._provider = LocalStubProvider()
        self.default_model = config.get("AI_MODEL") or self._provider.default_model
        self.default_temperature = config.get("AI_TEMPERATURE", 0.7)

    def chat(self, messages: list, model: str | None = None, *, json_mode: bool = False,
             temperature: float | None = None, max_tokens: int = 4096) -> dict:
        """
        Send a chat completion request.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, total_tokens,
                   model, provider, latency_ms}
        """
        if self.provider_name == "local":
            model = LocalStubProvider.default_model
        model = model or self.default_model
        start = time.time()
        try:
            result = self._provider.chat(
                messages, model,
                json_mode=json_mode,
                temperature=self.default_temperature if temperature is None else temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            latency_ms = int((time.time() - start) * 1000)
            logger.error("LLM call failed (provider=%s, model=%s, %dms): %s",
                         self.provider_name, model, latency_ms, e)
            raise

        latency_ms = int((time.time() - start) * 1000)
        result["total_tokens"] = (result.get("prompt_tokens") or 0) + (result.get("completion_tokens") or 0)
        result["provider"] = self.provider_name
        result["latency_ms"] = latency_ms
        logger.info("LLM call ok (provider=%s, model=%s, tokens=%d, %dms)",
                    self.provider_name, result.get("model"), result["total_tokens"], latency_ms)
        return result

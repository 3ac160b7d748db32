"""
Proven Prover

One verifier instance: the complete call surface.

    Queries:  pubkey(), get_config(caller), owner
    Runs:     run_js(code, args, secret), run_js_from_url(url, args),
              ask_model(model, prompt)
    Admin:    transfer_ownership, update_config, update_secret,
              allow_code_hash, set_secret

Every fallible call raises a ProverError subclass; nothing else escapes
except programming errors.
"""

from typing import Optional, Sequence

from .admin import AdminSurface, ContractState
from .attestation import AttestationBuilder, ProvenOutput
from .dispatcher import ExecutionDispatcher
from .host import Host
from .interpreter import Interpreter
from .policy import AccessPolicy, PublicPolicy, redact_for
from .prompts import ASK_LLM, PRESET_MODELS, load_script
from .signing import KeyService
from .store import StateStore


class Prover:
    """Composes key service, policy state, dispatcher and admin surface."""

    def __init__(
        self,
        host: Host,
        interpreter: Interpreter,
        owner: bytes,
        policy: Optional[AccessPolicy] = None,
        store: Optional[StateStore] = None
    ):
        self.host = host
        self.keys = KeyService(host)
        self.state = ContractState(owner, policy or PublicPolicy(), store)
        self.admin = AdminSurface(self.state)
        self.builder = AttestationBuilder(host, self.keys)
        self.dispatcher = ExecutionDispatcher(
            host, interpreter, self.keys, self.builder, lambda: self.state.policy
        )

    @classmethod
    def restore(
        cls,
        host: Host,
        interpreter: Interpreter,
        store: StateStore,
        owner: bytes,
        policy: Optional[AccessPolicy] = None
    ) -> "Prover":
        """
        Reopen an instance from ``store``.

        ``owner`` and ``policy`` are only used on first deployment, when the
        store is empty; they are saved immediately.
        """
        saved = store.load()
        if saved is not None:
            return cls(host, interpreter, saved[0], saved[1], store)
        policy = policy or PublicPolicy()
        store.save(owner, policy)
        return cls(host, interpreter, owner, policy, store)

    # Queries

    @property
    def owner(self) -> bytes:
        return self.state.owner

    def pubkey(self) -> bytes:
        return self.keys.public_key()

    def get_config(self, caller: bytes) -> AccessPolicy:
        owner, policy = self.state.snapshot()
        return redact_for(policy, caller, owner)

    # Runs

    def run_js(self, code: str, args: Sequence[str], secret: Optional[str] = None) -> ProvenOutput:
        return self.dispatcher.run(code, args, secret)

    def run_js_from_url(self, url: str, args: Sequence[str]) -> ProvenOutput:
        return self.dispatcher.run_from_url(url, args)

    def ask_model(self, model: str, prompt: str) -> ProvenOutput:
        """Run the bundled ``ask_llm`` script; the endpoint comes from the secret."""
        return self.dispatcher.run(load_script(ASK_LLM), [model, prompt])

    def ask_gpt4(self, prompt: str) -> ProvenOutput:
        return self.ask_model(PRESET_MODELS["gpt4"], prompt)

    def ask_gpt3n5(self, prompt: str) -> ProvenOutput:
        return self.ask_model(PRESET_MODELS["gpt3n5"], prompt)

    # Admin

    def transfer_ownership(self, caller: bytes, new_owner: bytes) -> None:
        self.admin.transfer_ownership(caller, new_owner)

    def update_config(self, caller: bytes, policy: AccessPolicy) -> None:
        self.admin.update_config(caller, policy)

    def update_secret(self, caller: bytes, secret: str) -> None:
        self.admin.update_secret(caller, secret)

    def allow_code_hash(self, caller: bytes, code_hash: bytes) -> None:
        self.admin.allow_code_hash(caller, code_hash)

    def set_secret(self, caller: bytes, code_hash: bytes, secret: str) -> None:
        self.admin.set_secret(caller, code_hash, secret)

"""Multi-agent company runtime.

Agents talk through group mailboxes held by ``CompanyStore``, call a fixed
tool catalog and reach their models through ``LLMGateway``.
``CompanyRuntime`` wires the pieces together.
"""

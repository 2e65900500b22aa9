class BridgeError(Exception):
    """Base class for errors raised by the agent-to-UI bridge."""


class ToolNotFoundError(BridgeError):
    def __init__(self, tool: str):
        super().__init__(f"Tool '{tool}' not found")
        self.tool = tool


class AgentNotFoundError(BridgeError, KeyError):
    def __init__(self, agent_id: str):
        super().__init__(f"Agent '{agent_id}' is not bound")
        self.agent_id = agent_id

    def __str__(self) -> str:
        return self.args[0]


class CallCancelledError(BridgeError):
    def __init__(self, tool: str, call_id: str):
        super().__init__(f"Tool call '{call_id}' to '{tool}' was cancelled")
        self.tool = tool
        self.call_id = call_id

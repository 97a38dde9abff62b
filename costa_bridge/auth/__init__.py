from costa_bridge.auth.login_poller import LoginPoller, LoginPollState

__all__ = ["LoginPoller", "LoginPollState"]

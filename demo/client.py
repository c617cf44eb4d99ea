import os
import sys

from dotenv import load_dotenv

from lease_x402.client import ActionClientConfig, ActionClientSync, OutcomeStatus

load_dotenv()

ACTION = sys.argv[1] if len(sys.argv) > 1 else "renew-lease"
OPERATOR = os.getenv("WALLET_ADDRESS", "anonymous")

with ActionClientSync(ActionClientConfig(operator=OPERATOR)) as client:
    outcome = client.dispatch(ACTION)

print("State:", client.state.value)
print("Status:", outcome.http_status)
print("Message:", outcome.message)
if outcome.status is OutcomeStatus.CHALLENGED:
    print("Scheme:", outcome.challenge.scheme)
    for key, value in outcome.challenge.params.items():
        print(f"  {key}: {value}")
    print("Replay the action with a signed receipt in the X-PAYMENT header.")
elif outcome.body:
    print("Body:", outcome.body)

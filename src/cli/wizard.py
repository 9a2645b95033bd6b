"""Multi-step connection wizard used by `portal-sync init`.

The wizard is a small state machine. Each step asks one question and
returns the name of the next step, None when the flow is complete, or a
FlowAction:

- BACK: re-run the previous step (answer '<' or pick '< Back')
- CANCEL: the prompt was dismissed; the user is asked whether to resume
- RESUME: re-run the current step

Answers are kept in WizardState, so going back shows the previous value.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from src.dynamics_client.api_wrapper import is_guid
from src.scm.chooser import Chooser, PickItem, Validator

logger = logging.getLogger(__name__)

TITLE = 'Connect to your instance'

BACK_LABEL = '< Back'
BACK_TOKEN = '<'

CRM_REGIONS = [
    PickItem('crm', 'North America'),
    PickItem('crm2', 'South America'),
    PickItem('crm3', 'Canada'),
    PickItem('crm4', 'EMEA'),
    PickItem('crm5', 'APAC'),
    PickItem('crm6', 'Australia'),
    PickItem('crm7', 'Japan'),
    PickItem('crm8', 'India'),
    PickItem('crm9', 'North America 2'),
    PickItem('crm11', 'UK'),
]


class FlowAction(Enum):
    BACK = 'back'
    CANCEL = 'cancel'
    RESUME = 'resume'


StepResult = Union[str, FlowAction, None]


@dataclass
class WizardState:
    """Answers collected by the wizard."""
    crm_region: Optional[str] = None
    instance_name: Optional[str] = None
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    use_folders_for_web_files: Optional[bool] = None


def validate_guid(value: str) -> Optional[str]:
    return None if is_guid(value) else 'Guid not valid'


class MultiStepInput:
    """Runs the connection wizard against a Chooser.

    Example:
        >>> wizard = MultiStepInput(ConsoleChooser())
        >>> state = wizard.run()
        >>> state.crm_region if state else 'cancelled'
        'crm4'
    """

    START_STEP = 'region'

    def __init__(self, chooser: Chooser, state: Optional[WizardState] = None):
        self.chooser = chooser
        self.state = state or WizardState()
        self.history: List[str] = []
        self.steps: Dict[str, Callable[[], StepResult]] = {
            'region': self.pick_region,
            'instance': self.input_instance_name,
            'tenant': self.input_tenant_id,
            'client_id': self.input_client_id,
            'client_secret': self.input_client_secret,
            'folders': self.pick_folder_mode,
        }

    def run(self) -> Optional[WizardState]:
        """Step through the wizard.

        Returns:
            The collected state, or None if the user cancelled
        """
        step: Optional[str] = self.START_STEP
        while step is not None:
            result = self.steps[step]()

            if result is FlowAction.BACK:
                if self.history:
                    step = self.history.pop()
                continue
            if result is FlowAction.CANCEL:
                if self.should_resume():
                    result = FlowAction.RESUME
                else:
                    logger.info(f"Wizard cancelled at step '{step}'")
                    return None
            if result is FlowAction.RESUME:
                continue

            self.history.append(step)
            step = result

        return self.state

    def should_resume(self) -> bool:
        choice = self.chooser.pick(
            [PickItem('Resume', 'Continue where you left off'), PickItem('Cancel', 'Discard the answers')],
            'The prompt was dismissed. Resume the configuration?'
        )
        return choice is not None and choice.label == 'Resume'

    # Steps

    def pick_region(self) -> StepResult:
        pick = self._pick(CRM_REGIONS, self._placeholder('Select your portal region'))
        if isinstance(pick, FlowAction):
            return pick
        self.state.crm_region = pick.label
        return 'instance'

    def input_instance_name(self) -> StepResult:
        answer = self._ask(
            self._placeholder(
                'Provide the name of your instance. E.g. org7c98f08c if the url '
                'to your org is org7c98f08c.crm4.dynamics.com'
            ),
            value=self.state.instance_name,
        )
        if isinstance(answer, FlowAction):
            return answer
        self.state.instance_name = answer
        return 'tenant'

    def input_tenant_id(self) -> StepResult:
        answer = self._ask(
            self._placeholder(
                'Provide the tenant Id of your AAD instance e.g. 10ea4d3e-1511-4461-9c6d-e21e73840528'
            ),
            validate=validate_guid,
            value=self.state.tenant_id,
        )
        if isinstance(answer, FlowAction):
            return answer
        self.state.tenant_id = answer
        return 'client_id'

    def input_client_id(self) -> StepResult:
        answer = self._ask(
            self._placeholder(
                'Provide the client Id of your AAD app registration e.g. 65f4ee4c-bbec-4059-b2ce-05e8e8acc679'
            ),
            validate=validate_guid,
            value=self.state.client_id,
        )
        if isinstance(answer, FlowAction):
            return answer
        self.state.client_id = answer
        return 'client_secret'

    def input_client_secret(self) -> StepResult:
        answer = self._ask(self._placeholder('Provide the client secret'), password=True)
        if isinstance(answer, FlowAction):
            return answer
        self.state.client_secret = answer
        return 'folders'

    def pick_folder_mode(self) -> StepResult:
        pick = self._pick(
            [
                PickItem('Yes', 'Mirror the web page tree as folders under Web Files', True),
                PickItem('No', 'Keep all web files flat under Web Files', False),
            ],
            self._placeholder('Use folders for web files?'),
        )
        if isinstance(pick, FlowAction):
            return pick
        self.state.use_folders_for_web_files = pick.value
        return None

    # Input helpers

    def _placeholder(self, text: str) -> str:
        return f"{TITLE} ({len(self.history) + 1}/{len(self.steps)}): {text}"

    def _pick(self, items: List[PickItem], placeholder: str) -> Union[PickItem, FlowAction]:
        choices = list(items)
        if self.history:
            choices.append(PickItem(BACK_LABEL, 'Previous step', FlowAction.BACK))

        pick = self.chooser.pick(choices, placeholder)
        if pick is None:
            return FlowAction.CANCEL
        if pick.value is FlowAction.BACK:
            return FlowAction.BACK
        return pick

    def _ask(
        self,
        prompt: str,
        validate: Optional[Validator] = None,
        value: Optional[str] = None,
        password: bool = False,
    ) -> Union[str, FlowAction]:
        can_go_back = bool(self.history)

        def validate_or_back(text: str) -> Optional[str]:
            if can_go_back and text == BACK_TOKEN:
                return None
            return validate(text) if validate else None

        if can_go_back:
            prompt = f"{prompt} ('{BACK_TOKEN}' to go back)"

        answer = self.chooser.ask(prompt, validate_or_back, value, password)
        if answer is None:
            return FlowAction.CANCEL
        if can_go_back and answer == BACK_TOKEN:
            return FlowAction.BACK
        return answer

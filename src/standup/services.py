"""
服務組裝

依 Config 建立 HTTP 客戶端與各服務，CLI 與 API 共用。
"""

from dataclasses import dataclass
from typing import Optional

from .azure_devops_api import AzureDevOpsClient
from .collaborators import AdjustmentSink, IssueTracker, TimeTracker
from .completed_work import CompletedWorkService
from .config import Config
from .errors import InvalidOperationError
from .kimai_api import KimaiClient
from .outbox import AdjustmentOutbox
from .reorder import ReorderService
from .standup import StandUpService
from .users import UserService


@dataclass
class Services:
    time_tracker: TimeTracker
    issue_tracker: IssueTracker
    standup: StandUpService
    completed_work: CompletedWorkService
    reorder: ReorderService
    users: UserService
    project: str = ""


def build_services(config: Config, time_tracker: TimeTracker, issue_tracker: IssueTracker,
                   sink: Optional[AdjustmentSink] = None) -> Services:
    """以指定的外部服務建立 Services（測試時可注入假物件）"""
    completed_work = CompletedWorkService(issue_tracker, sink)
    return Services(
        time_tracker=time_tracker,
        issue_tracker=issue_tracker,
        standup=StandUpService(
            time_tracker,
            issue_tracker,
            completed_work,
            tz=config.get_tzinfo(),
            max_report_days=config.max_report_days,
            cache_max_age=config.cache_max_age,
        ),
        completed_work=completed_work,
        reorder=ReorderService(issue_tracker),
        users=UserService(time_tracker),
        project=config.azure_devops_project,
    )


def create_services(config: Config) -> Services:
    """依設定建立 Kimai / Azure DevOps 客戶端與服務"""
    if not config.is_configured():
        raise InvalidOperationError("Kimai and Azure DevOps connections are not configured. Run 'standup setup' first")

    sink = AdjustmentOutbox(config.outbox_path) if config.outbox_path else None
    return build_services(
        config,
        KimaiClient(config.kimai_url, config.kimai_token),
        AzureDevOpsClient(config.azure_devops_url, config.azure_devops_pat, config.azure_devops_project),
        sink,
    )

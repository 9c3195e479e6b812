import os
import subprocess
import sys

from quiz_service.models.schemas import QuestionResponse, QuizResponse


def test_response_models_read_orm_attributes():
    assert QuizResponse.model_config["from_attributes"] is True
    assert QuestionResponse.model_config["from_attributes"] is True


def test_schemas_use_current_pydantic_config():
    env = dict(os.environ, PYTHONPATH=os.pathsep.join(sys.path))
    completed = subprocess.run(
        [
            sys.executable,
            "-W", "error::pydantic.warnings.PydanticDeprecatedSince20",
            "-c", "import quiz_service.models.schemas",
        ],
        env=env,
        capture_output=True,
        text=True,
    )
    assert completed.returncode == 0, completed.stderr

"""DeepSeek 命令行对话示例。

用法：DEEPSEEK_API_KEY=... python examples/chat_demo.py [--stream]
模型取自配置项 default_model（环境变量 DEFAULT_MODEL）。
"""

import sys

from deepseek_core import Message, build_request, create_client
from deepseek_core.domain.constants import RoleType


def main() -> None:
    streaming = "--stream" in sys.argv[1:]
    client = create_client()
    history = []
    while True:
        text = input("\nYou: ").strip()
        if not text or text.lower() == "exit":
            break
        history.append(Message(role=RoleType.USER, content=text))
        req = build_request(
            client.default_model,
            history,
            max_tokens=1000,
            stream=streaming,
            allowed_models=client.allowed_models,
        )
        print("\nAssistant: ", end="", flush=True)
        if streaming:
            parts = []
            for result in client.chat_stream(req):
                if not result.is_success:
                    print(f"\n[error] {result.error.message}")
                    continue
                for choice in result.data.choices:
                    if choice.delta and choice.delta.content:
                        parts.append(choice.delta.content)
                        print(choice.delta.content, end="", flush=True)
            print()
            reply = "".join(parts)
        else:
            result = client.chat(req)
            if not result.is_success:
                print(f"[error {result.status_code}] {result.error.message}")
                continue
            reply = result.data.choices[0].message.content
            print(reply)
        history.append(Message(role=RoleType.ASSISTANT, content=reply))


if __name__ == "__main__":
    main()

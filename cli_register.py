import os
import requests

base_url = os.getenv("CAMPUS_EVENTS_URL", "http://localhost:8000")
headers = {
    "X-User-Id": os.getenv("CLI_USER_ID", "cli-user-001"),
    "X-User-Email": os.getenv("CLI_USER_EMAIL", ""),
}
if os.getenv("API_KEY"):
    headers["X-API-KEY"] = os.environ["API_KEY"]

while True:
    events = requests.get(f"{base_url}/events", headers=headers).json()
    if not events:
        print("Nenhum evento com inscrições abertas.")
        break

    for i, event in enumerate(events, start=1):
        situacao = "abertas" if event["registration_open"] else "encerradas"
        vagas = event["max_participants"] or "sem limite"
        print(
            f"{i}. {event['title']} ({event['event_date']} {event['event_time'][:5]}) "
            f"- inscritos: {event['participant_count']}/{vagas} - inscrições {situacao}"
        )

    choice = input("Evento (número, ou 'sair'): ").strip()
    if choice.lower() in ["sair", "exit"]:
        break
    if not choice.isdigit() or not 1 <= int(choice) <= len(events):
        print("Opção inválida.")
        continue
    event = events[int(choice) - 1]

    payload = {
        "name": input("Nome completo: "),
        "email": input("E-mail: "),
        "mobile_number": input("Celular (10 dígitos): "),
        "class": input("Turma: "),
        "department": input("Departamento: "),
    }
    resp = requests.post(
        f"{base_url}/events/{event['id']}/register",
        json=payload,
        headers=headers,
    )
    result = resp.json()

    print("Resultado:", result["message"])
    for field, error in result.get("field_errors", {}).items():
        print(f"  - {field}: {error}")
    if result.get("notification_error"):
        print("Aviso:", result["notification_error"])

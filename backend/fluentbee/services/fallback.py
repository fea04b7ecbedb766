"""Pre-vetted sentences substituted when generation is exhausted.

Every entry passes the sentence validators (8-14 words, capitalized,
terminal punctuation) and the set covers the 4/3/2/1 type split.
Lessons built from it are filed under FALLBACK_CATEGORY whatever category
was requested.
"""

from fluentbee.services.llm import Candidate

FALLBACK_CATEGORY = "daily life"

FALLBACK_SENTENCES: list[Candidate] = [
    Candidate(en="I usually drink a cup of hot coffee before work.", th="ปกติฉันดื่มกาแฟร้อนหนึ่งแก้วก่อนไปทำงาน"),
    Candidate(en="My sister takes the bus to the market every morning.", th="น้องสาวของฉันนั่งรถบัสไปตลาดทุกเช้า"),
    Candidate(en="The small shop near our house sells fresh bread and milk.", th="ร้านเล็กๆ ใกล้บ้านเราขายขนมปังและนมสด"),
    Candidate(en="We often cook rice and chicken together on Sunday evenings.", th="เรามักทำข้าวกับไก่ด้วยกันในเย็นวันอาทิตย์"),
    Candidate(en="Where can I buy a ticket for the train to Bangkok?", th="ฉันจะซื้อตั๋วรถไฟไปกรุงเทพฯ ได้ที่ไหน"),
    Candidate(en="How much does this bag of green apples cost today?", th="แอปเปิลเขียวถุงนี้ราคาเท่าไรวันนี้"),
    Candidate(en="Do you know what time the hotel restaurant opens tomorrow?", th="คุณรู้ไหมว่าร้านอาหารของโรงแรมเปิดกี่โมงพรุ่งนี้"),
    Candidate(en="Please speak a little more slowly so I can understand you.", th="กรุณาพูดช้าลงอีกนิดเพื่อให้ฉันเข้าใจคุณ"),
    Candidate(en="Please write the address of the hotel on this paper for me.", th="กรุณาเขียนที่อยู่ของโรงแรมลงบนกระดาษแผ่นนี้ให้ฉันด้วย"),
    Candidate(en="He does not like to wait in long lines at the bank.", th="เขาไม่ชอบรอคิวยาวที่ธนาคาร"),
]
